"""microsite_etl.content

Page body assembly.

Microsite pages keep their HTML in several places, depending on the page
type that created them:
  - node__field_summary   (summary field)
  - node__body            (standard body field)
  - node__field_body      (custom body field, used by a minority of pages)
  - field_featured_pages  (paragraphs: headline, text, button, image)

fuse_content() joins the first three in that order; the featured-page
paragraphs are rendered to markup and appended after them.
"""

from __future__ import annotations

import html
from dataclasses import dataclass

import psycopg

from microsite_etl.assets import drupal_uri_to_path
from microsite_etl.projector import EntityKind, field_join, project_entities

BODY_SEPARATOR = "\n\n"

PARAGRAPH_KIND = EntityKind(
    name="paragraph",
    base_table="paragraphs_item_field_data",
    id_column="id",
    base_columns=("type",),
    fields=(
        field_join("paragraph__field_headline", headline="field_headline_value"),
        field_join("paragraph__field_summary_text_2", text="field_summary_text_2_value"),
        field_join(
            "paragraph__field_button",
            button_uri="field_button_uri",
            button_title="field_button_title",
        ),
        field_join(
            "paragraph__field_image",
            media_image=True,
            image_uri="field_image_target_id",
        ),
    ),
)


# ---------------------------------------------------------------------------
# Body fusion
# ---------------------------------------------------------------------------

def fuse_content(
    title: str,
    page_title: str | None,
    summary: str | None,
    body: str | None,
    field_body: str | None,
) -> tuple[str, str]:
    """Return (effective_title, body_html).

    page_title overrides the node title.  Non-empty fragments among
    summary, body and field_body are joined, in that order, by a blank line.
    """
    effective_title = page_title if page_title else title
    parts = [p for p in (summary, body, field_body) if p]
    return effective_title, BODY_SEPARATOR.join(parts)


def append_fragments(body_html: str, rendered: str) -> str:
    if not rendered:
        return body_html
    if not body_html:
        return rendered
    return body_html + BODY_SEPARATOR + rendered


# ---------------------------------------------------------------------------
# Featured-page paragraphs
# ---------------------------------------------------------------------------

@dataclass
class Fragment:
    headline: str | None = None
    text: str | None = None
    button_uri: str | None = None
    button_title: str | None = None
    image_uri: str | None = None


def load_fragments(conn: psycopg.Connection, paragraph_ids: list[int]) -> list[Fragment]:
    """Project paragraphs and return them in the order given (delta order)."""
    records = project_entities(conn, PARAGRAPH_KIND, paragraph_ids)
    fragments = []
    for pid in paragraph_ids:
        record = records.get(int(pid))
        if record is None:
            continue
        fragments.append(
            Fragment(
                headline=record.get("headline"),
                text=record.get("text"),
                button_uri=record.get("button_uri"),
                button_title=record.get("button_title"),
                image_uri=record.get("image_uri"),
            )
        )
    return fragments



def render_fragment(fragment: Fragment, escape: bool = False) -> str:
    """Image, headline, text, button, in that order; absent parts are skipped.

    Field text is raw HTML and passes through untouched unless escape=True,
    which escapes the headline and the button link.  The text block is
    always emitted as stored.
    """
    def _e(value: str) -> str:
        return html.escape(value) if escape else value

    out = []
    src = drupal_uri_to_path(fragment.image_uri)
    if src:
        out.append(f'<p><img src="{_e(src)}" alt=""></p>\n')
    if fragment.headline:
        out.append(f"<h3>{_e(fragment.headline)}</h3>\n")
    if fragment.text:
        out.append(fragment.text + "\n")
    if fragment.button_uri:
        label = fragment.button_title or fragment.button_uri
        out.append(f'<p><a href="{_e(fragment.button_uri)}">{_e(label)}</a></p>\n')
    return "".join(out)


def render_fragments(fragments: list[Fragment], escape: bool = False) -> str:
    return "".join(render_fragment(f, escape=escape) for f in fragments)
