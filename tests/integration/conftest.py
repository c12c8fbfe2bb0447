"""Integration test fixtures.

Applies a minimal Drupal content schema against an ephemeral PostgreSQL
database provided by pytest-postgresql before each integration test, and
exposes a small builder for inserting nodes, field rows, paragraphs, media
and menu links.
"""

from __future__ import annotations

import uuid
from pathlib import Path

import psycopg
import pytest
from pytest_postgresql import factories

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

SCHEMA = Path(__file__).parent / "sql" / "drupal_schema.sql"

# ---------------------------------------------------------------------------
# pytest-postgresql process fixture
# ---------------------------------------------------------------------------

postgresql_proc = factories.postgresql_proc()
postgresql = factories.postgresql("postgresql_proc")


# ---------------------------------------------------------------------------
# Schema fixture
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def db_conn(postgresql):
    """Return (psycopg connection, dsn) with the Drupal schema applied.

    Each test gets a fresh schema via function scope so tests are isolated.
    """
    dsn = (
        f"host={postgresql.info.host} "
        f"port={postgresql.info.port} "
        f"dbname={postgresql.info.dbname} "
        f"user={postgresql.info.user} "
        f"password={postgresql.info.password or ''}"
    )
    conn = psycopg.connect(dsn, autocommit=True)
    try:
        conn.execute(SCHEMA.read_text(encoding="utf-8"))
        yield conn, dsn
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Drupal row builder
# ---------------------------------------------------------------------------

class DrupalBuilder:
    """Insert helpers mirroring how Drupal lays out entities and fields."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self.conn = conn
        self._next_id = 90000

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    def node(self, nid: int, type_: str, title: str, status: int = 1) -> int:
        self.conn.execute(
            "INSERT INTO node_field_data (nid, type, title, status) VALUES (%s, %s, %s, %s)",
            (nid, type_, title, status),
        )
        return nid

    def field(
        self,
        table: str,
        entity_id: int,
        deleted: int = 0,
        delta: int = 0,
        **columns,
    ) -> None:
        names = ["entity_id", "deleted", "delta", *columns.keys()]
        values = [entity_id, deleted, delta, *columns.values()]
        placeholders = ", ".join(["%s"] * len(values))
        self.conn.execute(
            f"INSERT INTO {table} ({', '.join(names)}) VALUES ({placeholders})",
            values,
        )

    def club(self, nid: int, title: str, club_number: int | None = None) -> int:
        self.node(nid, "ssp_club", title)
        if club_number is not None:
            self.field("node__field_club_number", nid, field_club_number_value=club_number)
        return nid

    def homepage(self, nid: int, title: str, alias: str | None = None) -> int:
        self.node(nid, "microsite_homepage", title)
        if alias is not None:
            self.conn.execute(
                "INSERT INTO path_alias (path, alias) VALUES (%s, %s)",
                (f"/node/{nid}", alias),
            )
        return nid

    def media_image(self, uri: str, name: str = "image", club_nid: int | None = None) -> int:
        """Create a media entity backed by a file; return the media id."""
        mid = self._id()
        fid = self._id()
        self.conn.execute("INSERT INTO file_managed (fid, uri) VALUES (%s, %s)", (fid, uri))
        self.conn.execute("INSERT INTO media_field_data (mid, name) VALUES (%s, %s)", (mid, name))
        self.field("media__field_media_image", mid, field_media_image_target_id=fid)
        if club_nid is not None:
            self.field("media__field_club", mid, field_club_target_id=club_nid)
        return mid

    def paragraph(
        self,
        type_: str = "featured_page",
        headline: str | None = None,
        text: str | None = None,
        button_uri: str | None = None,
        button_title: str | None = None,
        image_uri: str | None = None,
    ) -> int:
        pid = self._id()
        self.conn.execute(
            "INSERT INTO paragraphs_item_field_data (id, type) VALUES (%s, %s)",
            (pid, type_),
        )
        if headline is not None:
            self.field("paragraph__field_headline", pid, field_headline_value=headline)
        if text is not None:
            self.field("paragraph__field_summary_text_2", pid, field_summary_text_2_value=text)
        if button_uri is not None:
            self.field(
                "paragraph__field_button", pid,
                field_button_uri=button_uri, field_button_title=button_title,
            )
        if image_uri is not None:
            mid = self.media_image(image_uri)
            self.field("paragraph__field_image", pid, field_image_target_id=mid)
        return pid

    def feature(self, nid: int, paragraph_id: int, delta: int) -> None:
        self.field(
            "node__field_featured_pages", nid, delta=delta,
            field_featured_pages_target_id=paragraph_id,
        )

    def menu_link(
        self,
        target_nid: int | None,
        parent: str | None = None,
        title: str | None = None,
        weight: int = 0,
        enabled: int = 1,
        menu_name: str = "microsites",
        link_uri: str | None = None,
    ) -> str:
        """Insert a menu link; return its parent reference string."""
        link_id = self._id()
        link_uuid = str(uuid.uuid4())
        self.conn.execute(
            "INSERT INTO menu_link_content (id, uuid) VALUES (%s, %s)",
            (link_id, link_uuid),
        )
        self.conn.execute(
            """
            INSERT INTO menu_link_content_data
                (id, menu_name, title, link__uri, parent, weight, enabled)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (
                link_id, menu_name, title,
                link_uri or f"entity:node/{target_nid}",
                parent or "", weight, enabled,
            ),
        )
        return f"menu_link_content:{link_uuid}"


@pytest.fixture
def drupal(db_conn) -> DrupalBuilder:
    conn, _ = db_conn
    return DrupalBuilder(conn)
