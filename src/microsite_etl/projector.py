"""microsite_etl.projector

Table-driven projection of Drupal entities out of sparse per-field tables.

Drupal stores each entity as one base row (node_field_data,
paragraphs_item_field_data, ...) plus one side table per field
(node__body, paragraph__field_headline, ...), keyed by entity_id and
carrying a soft-delete flag.  Instead of hand-writing the joins for every
caller, an EntityKind lists its FieldJoin descriptors and project_entities()
composes the SQL from them.

Rules:
  - Only side-table rows with deleted = 0 participate.
  - A non-repeatable field contributes one value (or None).  If the store
    holds several rows for it, the first row returned wins; there is no
    tie-break.
  - A repeatable field contributes a list ordered by delta (or []).
  - A media_image field holds a media target id; the projector follows it
    through media__field_media_image to file_managed.uri.

Usage:
    from microsite_etl.projector import EntityKind, field_join, project_entity

    kind = EntityKind(
        name="node",
        base_table="node_field_data",
        id_column="nid",
        base_columns=("title",),
        fields=(field_join("node__body", body="body_value"),),
    )
    record = project_entity(conn, kind, 100)
    record.get("body")
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import psycopg
from psycopg import sql

log = logging.getLogger(__name__)

MEDIA_IMAGE_TABLE = "media__field_media_image"
MEDIA_IMAGE_TARGET_COLUMN = "field_media_image_target_id"
FILE_TABLE = "file_managed"


# ---------------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FieldJoin:
    """One side table joined by entity_id, exposing one or more slots.

    slots maps a slot name in the projected record to a column of the
    side table.  Several slots read from the same joined row, so paired
    columns (a link's uri and title) never come from different rows.
    """

    table: str
    slots: tuple[tuple[str, str], ...]
    repeatable: bool = False
    media_image: bool = False

    def __post_init__(self) -> None:
        if not self.slots:
            raise ValueError(f"FieldJoin on {self.table} declares no slots.")
        if self.media_image and len(self.slots) != 1:
            raise ValueError(
                f"media_image FieldJoin on {self.table} must declare exactly one slot."
            )

    @property
    def slot_names(self) -> list[str]:
        return [name for name, _ in self.slots]


def field_join(
    table: str,
    *,
    repeatable: bool = False,
    media_image: bool = False,
    **slots: str,
) -> FieldJoin:
    """Build a FieldJoin from keyword slots: field_join("node__body", body="body_value")."""
    return FieldJoin(
        table=table,
        slots=tuple(slots.items()),
        repeatable=repeatable,
        media_image=media_image,
    )


@dataclass(frozen=True)
class EntityKind:
    name: str
    base_table: str
    id_column: str
    base_columns: tuple[str, ...] = ()
    fields: tuple[FieldJoin, ...] = ()

    def __post_init__(self) -> None:
        seen: set[str] = set(self.base_columns)
        for fj in self.fields:
            for slot in fj.slot_names:
                if slot in seen:
                    raise ValueError(f"{self.name}: slot '{slot}' declared twice.")
                seen.add(slot)

    @property
    def single_fields(self) -> list[FieldJoin]:
        return [fj for fj in self.fields if not fj.repeatable]

    @property
    def repeatable_fields(self) -> list[FieldJoin]:
        return [fj for fj in self.fields if fj.repeatable]


@dataclass
class EntityRecord:
    """One projected entity: base-table columns plus one value per field slot."""

    entity_id: int
    base: dict[str, Any]
    fields: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        if key in self.fields:
            return self.fields[key]
        return self.base.get(key, default)


# ---------------------------------------------------------------------------
# SQL composition
# ---------------------------------------------------------------------------

def _media_chain(idx: int, source: sql.Composable) -> tuple[list[sql.Composable], sql.Composable]:
    """Joins from a media target id to its file URI, and the URI column."""
    media = sql.Identifier(f"m{idx}")
    file_ = sql.Identifier(f"u{idx}")
    joins = [
        sql.SQL(
            "LEFT JOIN {media_table} {media} "
            "ON {media}.entity_id = {source} AND {media}.deleted = 0"
        ).format(
            media_table=sql.Identifier(MEDIA_IMAGE_TABLE),
            media=media,
            source=source,
        ),
        sql.SQL("LEFT JOIN {file_table} {file} ON {file}.fid = {media}.{target}").format(
            file_table=sql.Identifier(FILE_TABLE),
            file=file_,
            media=media,
            target=sql.Identifier(MEDIA_IMAGE_TARGET_COLUMN),
        ),
    ]
    return joins, sql.SQL("{}.uri").format(file_)


def build_base_query(kind: EntityKind) -> tuple[sql.Composed, list[str]]:
    """Compose the base SELECT with one LEFT JOIN per non-repeatable field.

    Returns the query (one %s placeholder: the id array) and the slot name
    of every selected column after the id.
    """
    columns: list[sql.Composable] = [sql.Identifier("b", kind.id_column)]
    names: list[str] = []
    for col in kind.base_columns:
        columns.append(sql.Identifier("b", col))
        names.append(col)

    joins: list[sql.Composable] = []
    for idx, fj in enumerate(kind.single_fields):
        alias = sql.Identifier(f"f{idx}")
        joins.append(
            sql.SQL(
                "LEFT JOIN {table} {alias} "
                "ON {alias}.entity_id = {base_id} AND {alias}.deleted = 0"
            ).format(
                table=sql.Identifier(fj.table),
                alias=alias,
                base_id=sql.Identifier("b", kind.id_column),
            )
        )
        if fj.media_image:
            slot, col = fj.slots[0]
            chain, uri = _media_chain(idx, sql.Identifier(f"f{idx}", col))
            joins.extend(chain)
            columns.append(uri)
            names.append(slot)
        else:
            for slot, col in fj.slots:
                columns.append(sql.Identifier(f"f{idx}", col))
                names.append(slot)

    query = sql.SQL(
        "SELECT {columns} FROM {base_table} b {joins} "
        "WHERE {base_id} = ANY(%s::bigint[]) ORDER BY {base_id}"
    ).format(
        columns=sql.SQL(", ").join(columns),
        base_table=sql.Identifier(kind.base_table),
        joins=sql.SQL(" ").join(joins),
        base_id=sql.Identifier("b", kind.id_column),
    )
    return query, names


def build_repeatable_query(fj: FieldJoin) -> sql.Composed:
    """Compose the SELECT for one repeatable field, ordered by entity then delta."""
    columns: list[sql.Composable] = [sql.Identifier("r", "entity_id")]
    joins: list[sql.Composable] = []
    if fj.media_image:
        _, col = fj.slots[0]
        chain, uri = _media_chain(0, sql.Identifier("r", col))
        joins.extend(chain)
        columns.append(uri)
    else:
        columns.extend(sql.Identifier("r", col) for _, col in fj.slots)

    return sql.SQL(
        "SELECT {columns} FROM {table} r {joins} "
        "WHERE r.entity_id = ANY(%s::bigint[]) AND r.deleted = 0 "
        "ORDER BY r.entity_id, r.delta"
    ).format(
        columns=sql.SQL(", ").join(columns),
        table=sql.Identifier(fj.table),
        joins=sql.SQL(" ").join(joins),
    )


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------

def project_entities(
    conn: psycopg.Connection,
    kind: EntityKind,
    ids: Iterable[int],
) -> dict[int, EntityRecord]:
    """Project every entity in ids; ids with no base row are absent from the result."""
    wanted = sorted({int(i) for i in ids})
    if not wanted:
        return {}

    query, names = build_base_query(kind)
    records: dict[int, EntityRecord] = {}
    for row in conn.execute(query, (wanted,)).fetchall():
        entity_id = int(row[0])
        if entity_id in records:
            log.debug(
                "%s %s: duplicate side-table rows; keeping the first", kind.name, entity_id
            )
            continue
        values = dict(zip(names, row[1:]))
        base = {col: values.pop(col) for col in kind.base_columns}
        records[entity_id] = EntityRecord(entity_id=entity_id, base=base, fields=values)

    for fj in kind.repeatable_fields:
        for record in records.values():
            for slot in fj.slot_names:
                record.fields[slot] = []
        rows = conn.execute(build_repeatable_query(fj), (wanted,)).fetchall()
        for row in rows:
            record = records.get(int(row[0]))
            if record is None:
                continue
            for slot, value in zip(fj.slot_names, row[1:]):
                record.fields[slot].append(value)

    return records


def project_entity(
    conn: psycopg.Connection,
    kind: EntityKind,
    entity_id: int,
) -> EntityRecord | None:
    return project_entities(conn, kind, [entity_id]).get(int(entity_id))
