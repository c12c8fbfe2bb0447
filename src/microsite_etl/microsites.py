"""microsite_etl.microsites

Microsite assembly: homepage + menu-discovered pages, fused bodies,
rendered paragraphs, homepage assets and the media download manifest.

Resolution order for one homepage (each step feeds the next):
  1. Homepage menu link → reference "menu_link_content:{uuid}"
  2. Enabled child links under that reference (weight, title)
  3. Project homepage + child nodes through PAGE_KIND
  4. Fuse body fragments, append rendered featured-page paragraphs
  5. Homepage assets (independent of 1–4)

Different microsites share nothing, so resolve_microsites() fans them out
across a thread pool, one connection per task.
"""

from __future__ import annotations

import concurrent.futures
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import psycopg

from microsite_etl.assets import (
    HomepageAssets,
    drupal_uri_to_path,
    extract_media_urls,
    homepage_assets,
)
from microsite_etl.bindings import ClubMicrosite
from microsite_etl.content import (
    append_fragments,
    fuse_content,
    load_fragments,
    render_fragments,
)
from microsite_etl.menu_tree import (
    MENU_NAME,
    MenuLink,
    descendants_of,
    homepage_menu_link,
)
from microsite_etl.projector import EntityKind, EntityRecord, field_join, project_entities

log = logging.getLogger(__name__)

PAGE_KIND = EntityKind(
    name="node",
    base_table="node_field_data",
    id_column="nid",
    base_columns=("type", "title", "status", "created", "changed"),
    fields=(
        field_join("node__field_page_title", page_title="field_page_title_value"),
        field_join("node__body", body="body_value"),
        field_join("node__field_summary", summary="field_summary_value"),
        field_join("node__field_body", field_body="field_body_value"),
        field_join(
            "node__field_hero_banner_image",
            media_image=True,
            hero_image="field_hero_banner_image_target_id",
        ),
        field_join(
            "node__field_navigatio_",
            media_image=True,
            nav_image="field_navigatio__target_id",
        ),
        field_join(
            "node__field_featured_pages",
            repeatable=True,
            featured_pages="field_featured_pages_target_id",
        ),
    ),
)


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass
class MicrositePage:
    nid: int
    title: str
    body_html: str
    status: bool
    menu_id: int | None = None
    menu_title: str | None = None
    menu_weight: int | None = None
    menu_parent: str | None = None
    hero_image: str | None = None   # public:// URI
    nav_image: str | None = None    # public:// URI
    depth: int = 0

    @property
    def media_urls(self) -> list[str]:
        return extract_media_urls(self.body_html)

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in self.__dict__.items() if v is not None}
        d["media_urls"] = self.media_urls
        return d


@dataclass
class Microsite:
    club: ClubMicrosite
    pages: list[MicrositePage]
    assets: HomepageAssets
    slug: str | None = None
    has_menu: bool = True
    media_manifest: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {**self.club.to_dict()}
        if d.get("club_number") is None:
            d.pop("club_number", None)
        if self.slug is not None:
            d["slug"] = self.slug
        d["assets"] = self.assets.to_dict()
        d["pages"] = [p.to_dict() for p in self.pages]
        d["media_manifest"] = self.media_manifest
        return d


# ---------------------------------------------------------------------------
# Page assembly
# ---------------------------------------------------------------------------

def page_from_record(
    record: EntityRecord,
    link: MenuLink | None,
    rendered_fragments: str = "",
) -> MicrositePage:
    title, body_html = fuse_content(
        record.get("title"),
        record.get("page_title"),
        record.get("summary"),
        record.get("body"),
        record.get("field_body"),
    )
    return MicrositePage(
        nid=record.entity_id,
        title=title,
        body_html=append_fragments(body_html, rendered_fragments),
        status=record.get("status") == 1,
        menu_id=link.id if link else None,
        menu_title=link.title if link else None,
        menu_weight=link.weight if link else None,
        menu_parent=link.parent if link else None,
        hero_image=record.get("hero_image"),
        nav_image=record.get("nav_image"),
        depth=link.depth if link else 0,
    )


def _assemble(
    conn: psycopg.Connection,
    record: EntityRecord,
    link: MenuLink | None,
    escape: bool,
) -> MicrositePage:
    fragments = load_fragments(conn, record.get("featured_pages") or [])
    return page_from_record(record, link, render_fragments(fragments, escape=escape))


def pages_for_club(
    conn: psycopg.Connection,
    homepage_nid: int,
    depth: int = 1,
    escape: bool = False,
) -> list[MicrositePage]:
    """Homepage first, then its menu descendants in menu order.

    The homepage is omitted when its node row is missing.  A homepage with
    no menu entry yields only itself.
    """
    homepage_link = homepage_menu_link(conn, homepage_nid)
    links: list[MenuLink] = []
    if homepage_link is not None:
        links = descendants_of(conn, homepage_link.reference, max_depth=depth)
    else:
        log.debug("homepage %s has no '%s' menu entry", homepage_nid, MENU_NAME)

    child_nids = [link.target_nid for link in links if link.target_nid is not None]
    records = project_entities(conn, PAGE_KIND, [homepage_nid, *child_nids])

    pages: list[MicrositePage] = []
    homepage = records.get(int(homepage_nid))
    if homepage is not None:
        pages.append(_assemble(conn, homepage, homepage_link, escape))

    for link in links:
        record = records.get(link.target_nid) if link.target_nid is not None else None
        if record is None:
            continue
        pages.append(_assemble(conn, record, link, escape))
    return pages


def media_manifest(pages: list[MicrositePage], assets: HomepageAssets) -> list[str]:
    """Distinct public file paths referenced by a microsite, first-seen order."""
    paths: list[str] = []
    for page in pages:
        paths.extend(page.media_urls)
        for uri in (page.hero_image, page.nav_image):
            path = drupal_uri_to_path(uri)
            if path:
                paths.append(path)
    for uri in (assets.banner_image, assets.logo_image):
        path = drupal_uri_to_path(uri)
        if path:
            paths.append(path)
    return list(dict.fromkeys(paths))


def resolve_microsite(
    conn: psycopg.Connection,
    club: ClubMicrosite,
    slug: str | None = None,
    depth: int = 1,
    escape: bool = False,
) -> Microsite:
    pages = pages_for_club(conn, club.homepage_nid, depth=depth, escape=escape)
    assets = homepage_assets(conn, club.homepage_nid)
    has_menu = bool(pages) and pages[0].depth == 0 and pages[0].menu_id is not None
    log.info(
        "club %s (homepage %s): %d pages",
        club.club_nid, club.homepage_nid, len(pages),
    )
    return Microsite(
        club=club,
        pages=pages,
        assets=assets,
        slug=slug,
        has_menu=has_menu,
        media_manifest=media_manifest(pages, assets),
    )


def resolve_microsites(
    connect: Callable[[], psycopg.Connection],
    clubs: list[ClubMicrosite],
    slugs: dict[int, str] | None = None,
    depth: int = 1,
    escape: bool = False,
    max_workers: int = 4,
) -> list[Microsite]:
    """Resolve many microsites concurrently; results follow the order of clubs.

    slugs maps homepage_nid to the homepage's URL slug.

    Each task opens its own connection through connect(), so at most
    max_workers connections are open at once.  Any task failure propagates.
    """
    if not clubs:
        return []
    slugs = slugs or {}

    def _resolve_one(club: ClubMicrosite) -> Microsite:
        with connect() as conn:
            return resolve_microsite(
                conn, club, slug=slugs.get(club.homepage_nid), depth=depth, escape=escape,
            )

    results: list[Microsite | None] = [None] * len(clubs)
    workers = max(1, min(max_workers, len(clubs)))
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {
            executor.submit(_resolve_one, club): idx for idx, club in enumerate(clubs)
        }
        for future in concurrent.futures.as_completed(futures):
            results[futures[future]] = future.result()
    return [m for m in results if m is not None]
