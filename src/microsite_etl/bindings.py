"""microsite_etl.bindings

Club → microsite homepage resolution.

A club (ssp_club node) owns a microsite when a microsite_homepage node
carries the same title.  A few homepages were renamed after the fact, so an
explicit list of (club_nid, homepage_nid) override pairs is UNIONed in.
Both sides of an override are re-checked against their type tags.

The override list lives in config/microsite_overrides.yml:

    overrides:
      - club_nid: 51008
        homepage_nid: 55629
        note: Boondocking Streamers -> Boondockers Airstream Club

A club that matches several homepages yields several bindings; callers
receive the full list and decide how to treat the fan-out.

Usage:
    from microsite_etl.bindings import clubs_with_microsites, load_overrides

    overrides = load_overrides(Path("config/microsite_overrides.yml"))
    bindings = clubs_with_microsites(conn, overrides)
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import psycopg
import yaml

from microsite_etl.shared import OverrideConfigError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CLUB_TYPE = "ssp_club"
HOMEPAGE_TYPE = "microsite_homepage"
DEFAULT_OVERRIDES_PATH = Path("config/microsite_overrides.yml")


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OverridePair:
    club_nid: int
    homepage_nid: int
    note: str | None = None


@dataclass
class OverrideSet:
    pairs: list[OverridePair]
    source: str = "builtin"
    yaml_hash: str | None = None

    @property
    def club_nids(self) -> list[int]:
        return [p.club_nid for p in self.pairs]

    @property
    def homepage_nids(self) -> list[int]:
        return [p.homepage_nid for p in self.pairs]


# Homepages whose titles drifted away from their club's title.
DEFAULT_OVERRIDES = OverrideSet(
    pairs=[
        OverridePair(51008, 55629, "Boondocking Streamers -> Boondockers Airstream Club"),
        OverridePair(47596, 50698, "Vintage Airstream Club -> Vintage Airstream Club (VAC)"),
    ],
)


@dataclass
class ClubMicrosite:
    club_nid: int
    club_number: int | None
    club_name: str
    homepage_nid: int
    is_intraclub: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "club_nid": self.club_nid,
            "club_number": self.club_number,
            "club_name": self.club_name,
            "homepage_nid": self.homepage_nid,
            "is_intraclub": self.is_intraclub,
        }


@dataclass
class ClubSlug:
    club_nid: int
    homepage_nid: int
    slug: str


# ---------------------------------------------------------------------------
# Override config loader + validator
# ---------------------------------------------------------------------------

def load_overrides(yaml_path: Path) -> OverrideSet:
    """Load, validate, and return the override pairs from a YAML file.

    Raises:
        OverrideConfigError: If the document does not match the schema.
        FileNotFoundError: If the YAML file does not exist.
    """
    raw = yaml_path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw)
    validate_overrides(data)
    pairs = [
        OverridePair(
            club_nid=int(item["club_nid"]),
            homepage_nid=int(item["homepage_nid"]),
            note=item.get("note"),
        )
        for item in data.get("overrides") or []
    ]
    return OverrideSet(
        pairs=pairs,
        source=str(yaml_path),
        yaml_hash=hashlib.sha256(raw.encode("utf-8")).hexdigest(),
    )


def validate_overrides(data: Any) -> None:
    """Raise OverrideConfigError if data does not match the override schema."""
    if not isinstance(data, dict):
        raise OverrideConfigError("YAML root must be a mapping.")
    if "overrides" not in data:
        raise OverrideConfigError("Missing required YAML key: 'overrides'")

    items = data["overrides"] or []
    if not isinstance(items, list):
        raise OverrideConfigError("'overrides' must be a list.")

    seen: set[tuple[int, int]] = set()
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise OverrideConfigError(f"overrides[{idx}] must be a mapping.")
        for key in ("club_nid", "homepage_nid"):
            val = item.get(key)
            if isinstance(val, bool) or not isinstance(val, int):
                raise OverrideConfigError(
                    f"overrides[{idx}].{key} value {val!r} is not an integer."
                )
            if val <= 0:
                raise OverrideConfigError(f"overrides[{idx}].{key} must be positive.")
        note = item.get("note")
        if note is not None and not isinstance(note, str):
            raise OverrideConfigError(f"overrides[{idx}].note must be a string.")
        pair = (item["club_nid"], item["homepage_nid"])
        if pair in seen:
            raise OverrideConfigError(f"overrides[{idx}] duplicates pair {pair}.")
        seen.add(pair)


def resolve_overrides(path: Path | None = None) -> OverrideSet:
    """Overrides from an explicit path, else the default file if present, else built-ins."""
    if path is not None:
        return load_overrides(path)
    if DEFAULT_OVERRIDES_PATH.exists():
        return load_overrides(DEFAULT_OVERRIDES_PATH)
    return DEFAULT_OVERRIDES


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

_BINDINGS_QUERY = """
    SELECT
        club.nid AS club_nid,
        cn.field_club_number_value AS club_number,
        club.title AS club_name,
        hp.nid AS homepage_nid,
        cn.field_club_number_value IS NULL AS is_intraclub
    FROM node_field_data hp
    JOIN node_field_data club ON club.title = hp.title AND club.type = %(club_type)s
    LEFT JOIN node__field_club_number cn ON cn.entity_id = club.nid AND cn.deleted = 0
    WHERE hp.type = %(homepage_type)s

    UNION

    SELECT
        club.nid AS club_nid,
        cn.field_club_number_value AS club_number,
        club.title AS club_name,
        hp.nid AS homepage_nid,
        cn.field_club_number_value IS NULL AS is_intraclub
    FROM unnest(%(club_nids)s::bigint[], %(homepage_nids)s::bigint[]) AS o(club_nid, homepage_nid)
    JOIN node_field_data club ON club.nid = o.club_nid
    JOIN node_field_data hp ON hp.nid = o.homepage_nid
    LEFT JOIN node__field_club_number cn ON cn.entity_id = club.nid AND cn.deleted = 0
    WHERE club.type = %(club_type)s AND hp.type = %(homepage_type)s

    ORDER BY is_intraclub, club_number NULLS LAST, club_name
"""

_SLUGS_QUERY = """
    SELECT club.nid AS club_nid, hp.nid AS homepage_nid, TRIM(LEADING '/' FROM pa.alias) AS slug
    FROM node_field_data club
    JOIN node_field_data hp ON hp.title = club.title AND hp.type = %(homepage_type)s
    JOIN path_alias pa ON pa.path = '/node/' || hp.nid
    WHERE club.type = %(club_type)s

    UNION

    SELECT club.nid AS club_nid, hp.nid AS homepage_nid, TRIM(LEADING '/' FROM pa.alias) AS slug
    FROM unnest(%(club_nids)s::bigint[], %(homepage_nids)s::bigint[]) AS o(club_nid, homepage_nid)
    JOIN node_field_data club ON club.nid = o.club_nid
    JOIN node_field_data hp ON hp.nid = o.homepage_nid
    JOIN path_alias pa ON pa.path = '/node/' || hp.nid
    WHERE club.type = %(club_type)s AND hp.type = %(homepage_type)s
"""


def _params(overrides: OverrideSet) -> dict[str, Any]:
    return {
        "club_type": CLUB_TYPE,
        "homepage_type": HOMEPAGE_TYPE,
        "club_nids": overrides.club_nids,
        "homepage_nids": overrides.homepage_nids,
    }


def clubs_with_microsites(
    conn: psycopg.Connection,
    overrides: OverrideSet | None = None,
) -> list[ClubMicrosite]:
    """Return every (club, homepage) binding, by title match UNION overrides.

    Ordered by is_intraclub, club_number (NULLs last), club_name.  A club
    without a club number is an intraclub.
    """
    overrides = overrides if overrides is not None else DEFAULT_OVERRIDES
    rows = conn.execute(_BINDINGS_QUERY, _params(overrides)).fetchall()
    return [
        ClubMicrosite(
            club_nid=int(r[0]),
            club_number=int(r[1]) if r[1] is not None else None,
            club_name=r[2],
            homepage_nid=int(r[3]),
            is_intraclub=bool(r[4]),
        )
        for r in rows
    ]


def club_slugs(
    conn: psycopg.Connection,
    overrides: OverrideSet | None = None,
) -> list[ClubSlug]:
    """Return the URL slug (path alias without leading '/') of each club's homepage."""
    overrides = overrides if overrides is not None else DEFAULT_OVERRIDES
    rows = conn.execute(_SLUGS_QUERY, _params(overrides)).fetchall()
    return [ClubSlug(club_nid=int(r[0]), homepage_nid=int(r[1]), slug=r[2]) for r in rows]


def find_club(
    bindings: list[ClubMicrosite],
    club_number: int | None = None,
    club_nid: int | None = None,
) -> ClubMicrosite | None:
    """First binding matching club_number (preferred) or club_nid."""
    if club_number is not None:
        return next((b for b in bindings if b.club_number == club_number), None)
    if club_nid is not None:
        return next((b for b in bindings if b.club_nid == club_nid), None)
    return None
