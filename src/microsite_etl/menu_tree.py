"""microsite_etl.menu_tree

Page discovery through the 'microsites' menu.

Direct club references (field_club, field_main_site_club) are unreliable
across the different microsite page types, but every public page is placed
under its homepage in the 'microsites' menu.  Menu parentage is therefore
the source of truth for which pages belong to a microsite.

A menu_link_content row carries a uuid; children point at their parent via
the reference string "menu_link_content:{uuid}" and at their target node via
"entity:node/{nid}".
"""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass

import psycopg

log = logging.getLogger(__name__)

MENU_NAME = "microsites"
_NODE_URI_RE = re.compile(r"^entity:node/(\d+)$")


@dataclass
class MenuLink:
    id: int
    uuid: str
    title: str | None
    weight: int | None
    parent: str | None
    enabled: bool
    link_uri: str
    depth: int = 1

    @property
    def reference(self) -> str:
        return menu_reference(self.uuid)

    @property
    def target_nid(self) -> int | None:
        return node_id_from_uri(self.link_uri)


def menu_reference(uuid: str) -> str:
    return f"menu_link_content:{uuid}"


def node_uri(nid: int) -> str:
    return f"entity:node/{nid}"


def node_id_from_uri(uri: str | None) -> int | None:
    """Parse 'entity:node/123' → 123; any other link target → None."""
    if not uri:
        return None
    m = _NODE_URI_RE.match(uri)
    return int(m.group(1)) if m else None


def _link_from_row(row: tuple, depth: int = 1) -> MenuLink:
    return MenuLink(
        id=int(row[0]),
        uuid=str(row[1]),
        title=row[2],
        weight=row[3],
        parent=row[4] or None,
        enabled=bool(row[5]),
        link_uri=row[6],
        depth=depth,
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def homepage_menu_link(conn: psycopg.Connection, homepage_nid: int) -> MenuLink | None:
    """The homepage's own menu entry, enabled or not; None when it has none."""
    row = conn.execute(
        """
        SELECT mld.id, mlc.uuid, mld.title, mld.weight, mld.parent,
               mld.enabled, mld.link__uri
        FROM menu_link_content mlc
        JOIN menu_link_content_data mld ON mld.id = mlc.id
        WHERE mld.link__uri = %s
          AND mld.menu_name = %s
        ORDER BY mld.id
        LIMIT 1
        """,
        (node_uri(homepage_nid), MENU_NAME),
    ).fetchone()
    return _link_from_row(row, depth=0) if row else None


def homepage_menu_reference(conn: psycopg.Connection, homepage_nid: int) -> str | None:
    link = homepage_menu_link(conn, homepage_nid)
    return link.reference if link else None


def children_of(
    conn: psycopg.Connection,
    parent_reference: str,
    depth: int = 1,
) -> list[MenuLink]:
    """Enabled links directly under parent_reference whose target node exists.

    Ordered by menu weight, then node title.
    """
    rows = conn.execute(
        """
        SELECT mld.id, mlc.uuid, mld.title, mld.weight, mld.parent,
               mld.enabled, mld.link__uri
        FROM menu_link_content_data mld
        JOIN menu_link_content mlc ON mlc.id = mld.id
        JOIN node_field_data n ON mld.link__uri = 'entity:node/' || n.nid
        WHERE mld.menu_name = %s
          AND mld.parent = %s
          AND mld.enabled = 1
        ORDER BY mld.weight, n.title
        """,
        (MENU_NAME, parent_reference),
    ).fetchall()
    return [_link_from_row(r, depth=depth) for r in rows]


def descendants_of(
    conn: psycopg.Connection,
    root_reference: str,
    max_depth: int = 1,
) -> list[MenuLink]:
    """Breadth-first walk below root_reference, at most max_depth levels.

    Menu data is not guaranteed acyclic, so each reference is expanded once.
    With max_depth=1 the result equals children_of(root_reference).
    """
    if max_depth < 1:
        return []

    found: list[MenuLink] = []
    visited: set[str] = {root_reference}
    queue: deque[tuple[str, int]] = deque([(root_reference, 1)])
    while queue:
        reference, depth = queue.popleft()
        for link in children_of(conn, reference, depth=depth):
            if link.reference in visited:
                log.debug("menu cycle at %s under %s; skipping", link.reference, reference)
                continue
            visited.add(link.reference)
            found.append(link)
            if depth < max_depth:
                queue.append((link.reference, depth + 1))
    return found
