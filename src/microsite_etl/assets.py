"""microsite_etl.assets

Media references: storage-URI rewriting, extraction from page HTML, and the
homepage-level banner / logo / Facebook lookups.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import psycopg

PUBLIC_SCHEME = "public://"
PUBLIC_FILES_PATH = "/sites/default/files/"

_MEDIA_RE = re.compile(
    r"""(?:src|href)=["']([^"']*?/sites/default/files/[^"']+)["']"""
)


def drupal_uri_to_path(uri: str | None) -> str | None:
    """Convert 'public://x' to '/sites/default/files/x'; other schemes → None."""
    if not uri or not uri.startswith(PUBLIC_SCHEME):
        return None
    return PUBLIC_FILES_PATH + uri[len(PUBLIC_SCHEME):]


def extract_media_urls(html: str | None) -> list[str]:
    """Every src/href value pointing into public file storage, in order, duplicates kept."""
    if not html:
        return []
    return _MEDIA_RE.findall(html)


# ---------------------------------------------------------------------------
# Homepage assets
# ---------------------------------------------------------------------------

@dataclass
class HomepageAssets:
    banner_image: str | None = None
    logo_image: str | None = None
    facebook_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}


def _banner_image(conn: psycopg.Connection, homepage_nid: int) -> str | None:
    # field_desktop_banner_image -> media -> field_media_image -> file
    row = conn.execute(
        """
        SELECT f.uri
        FROM node__field_desktop_banner_image dbi
        JOIN media__field_media_image mfi
          ON mfi.entity_id = dbi.field_desktop_banner_image_target_id AND mfi.deleted = 0
        JOIN file_managed f ON f.fid = mfi.field_media_image_target_id
        WHERE dbi.entity_id = %s AND dbi.deleted = 0
        ORDER BY dbi.delta
        LIMIT 1
        """,
        (homepage_nid,),
    ).fetchone()
    return row[0] if row else None


def _logo_image(conn: psycopg.Connection, homepage_nid: int) -> str | None:
    # Media tagged with this club whose name mentions 'logo'; oldest upload wins.
    row = conn.execute(
        """
        SELECT f.uri
        FROM media__field_club mfc
        JOIN media_field_data m ON m.mid = mfc.entity_id
        JOIN media__field_media_image mfi ON mfi.entity_id = m.mid AND mfi.deleted = 0
        JOIN file_managed f ON f.fid = mfi.field_media_image_target_id
        WHERE mfc.field_club_target_id = %s
          AND mfc.deleted = 0
          AND m.name LIKE '%%logo%%'
        ORDER BY m.mid
        LIMIT 1
        """,
        (homepage_nid,),
    ).fetchone()
    return row[0] if row else None


def _facebook_url(conn: psycopg.Connection, homepage_nid: int) -> str | None:
    # Social-media paragraph links take precedence over the generic button.
    row = conn.execute(
        """
        SELECT sml.field_social_media_link_uri
        FROM node__field_social_media_new smn
        JOIN paragraph__field_social_media_link sml
          ON sml.entity_id = smn.field_social_media_new_target_id AND sml.deleted = 0
        WHERE smn.entity_id = %s
          AND smn.deleted = 0
          AND sml.field_social_media_link_uri LIKE '%%facebook.com%%'
        ORDER BY smn.delta, sml.delta
        LIMIT 1
        """,
        (homepage_nid,),
    ).fetchone()
    if row:
        return row[0]
    row = conn.execute(
        """
        SELECT field_button_uri
        FROM node__field_button
        WHERE entity_id = %s
          AND deleted = 0
          AND field_button_uri LIKE '%%facebook.com%%'
        ORDER BY delta
        LIMIT 1
        """,
        (homepage_nid,),
    ).fetchone()
    return row[0] if row else None


def homepage_assets(conn: psycopg.Connection, homepage_nid: int) -> HomepageAssets:
    """Banner, logo and Facebook link for a homepage; each None when not found."""
    return HomepageAssets(
        banner_image=_banner_image(conn, homepage_nid),
        logo_image=_logo_image(conn, homepage_nid),
        facebook_url=_facebook_url(conn, homepage_nid),
    )
