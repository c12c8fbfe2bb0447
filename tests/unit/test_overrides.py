"""Unit tests for microsite_etl.bindings: override config loading and club selection."""

from __future__ import annotations

import hashlib
import textwrap
from pathlib import Path

import pytest

from microsite_etl.bindings import (
    DEFAULT_OVERRIDES,
    ClubMicrosite,
    OverridePair,
    find_club,
    load_overrides,
    resolve_overrides,
    validate_overrides,
)
from microsite_etl.shared import OverrideConfigError


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

OVERRIDES_YAML = textwrap.dedent("""\
    overrides:
      - club_nid: 51008
        homepage_nid: 55629
        note: Boondocking Streamers
      - club_nid: 47596
        homepage_nid: 50698
""")


@pytest.fixture
def overrides_path(tmp_path: Path) -> Path:
    p = tmp_path / "overrides.yml"
    p.write_text(OVERRIDES_YAML, encoding="utf-8")
    return p


# ---------------------------------------------------------------------------
# load_overrides
# ---------------------------------------------------------------------------

class TestLoadOverrides:
    def test_pairs_loaded_in_order(self, overrides_path):
        overrides = load_overrides(overrides_path)
        assert overrides.pairs == [
            OverridePair(51008, 55629, "Boondocking Streamers"),
            OverridePair(47596, 50698, None),
        ]

    def test_parallel_id_lists(self, overrides_path):
        overrides = load_overrides(overrides_path)
        assert overrides.club_nids == [51008, 47596]
        assert overrides.homepage_nids == [55629, 50698]

    def test_hash_and_source_recorded(self, overrides_path):
        overrides = load_overrides(overrides_path)
        assert overrides.yaml_hash == hashlib.sha256(OVERRIDES_YAML.encode()).hexdigest()
        assert overrides.source == str(overrides_path)

    def test_empty_list_allowed(self, tmp_path):
        p = tmp_path / "empty.yml"
        p.write_text("overrides: []\n", encoding="utf-8")
        assert load_overrides(p).pairs == []

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_overrides(tmp_path / "nope.yml")

    def test_shipped_config_matches_builtin_pairs(self):
        shipped = Path(__file__).parent.parent.parent / "config" / "microsite_overrides.yml"
        overrides = load_overrides(shipped)
        assert [(p.club_nid, p.homepage_nid) for p in overrides.pairs] == [
            (p.club_nid, p.homepage_nid) for p in DEFAULT_OVERRIDES.pairs
        ]


# ---------------------------------------------------------------------------
# validate_overrides
# ---------------------------------------------------------------------------

class TestValidateOverrides:
    def test_root_must_be_mapping(self):
        with pytest.raises(OverrideConfigError, match="mapping"):
            validate_overrides(["not", "a", "mapping"])

    def test_missing_key(self):
        with pytest.raises(OverrideConfigError, match="overrides"):
            validate_overrides({"pairs": []})

    def test_list_required(self):
        with pytest.raises(OverrideConfigError, match="list"):
            validate_overrides({"overrides": {"club_nid": 1}})

    def test_non_integer_id(self):
        with pytest.raises(OverrideConfigError, match="club_nid"):
            validate_overrides({"overrides": [{"club_nid": "51008", "homepage_nid": 1}]})

    def test_bool_is_not_an_id(self):
        with pytest.raises(OverrideConfigError, match="homepage_nid"):
            validate_overrides({"overrides": [{"club_nid": 1, "homepage_nid": True}]})

    def test_missing_homepage(self):
        with pytest.raises(OverrideConfigError, match="homepage_nid"):
            validate_overrides({"overrides": [{"club_nid": 1}]})

    def test_non_positive_id(self):
        with pytest.raises(OverrideConfigError, match="positive"):
            validate_overrides({"overrides": [{"club_nid": 0, "homepage_nid": 1}]})

    def test_duplicate_pair(self):
        item = {"club_nid": 1, "homepage_nid": 2}
        with pytest.raises(OverrideConfigError, match="duplicates"):
            validate_overrides({"overrides": [item, dict(item)]})

    def test_note_must_be_string(self):
        with pytest.raises(OverrideConfigError, match="note"):
            validate_overrides({"overrides": [{"club_nid": 1, "homepage_nid": 2, "note": 5}]})

    def test_null_overrides_is_empty(self):
        validate_overrides({"overrides": None})


# ---------------------------------------------------------------------------
# resolve_overrides
# ---------------------------------------------------------------------------

class TestResolveOverrides:
    def test_explicit_path_wins(self, overrides_path):
        assert resolve_overrides(overrides_path).source == str(overrides_path)

    def test_builtin_when_no_default_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert resolve_overrides() is DEFAULT_OVERRIDES

    def test_default_file_used_when_present(self, tmp_path, monkeypatch):
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "microsite_overrides.yml").write_text(
            "overrides:\n  - club_nid: 7\n    homepage_nid: 8\n", encoding="utf-8"
        )
        monkeypatch.chdir(tmp_path)
        assert resolve_overrides().club_nids == [7]


# ---------------------------------------------------------------------------
# find_club
# ---------------------------------------------------------------------------

class TestFindClub:
    BINDINGS = [
        ClubMicrosite(1, 10, "Alpha", 100, False),
        ClubMicrosite(1, 10, "Alpha", 101, False),
        ClubMicrosite(2, None, "Intra", 200, True),
    ]

    def test_by_number_takes_first(self):
        assert find_club(self.BINDINGS, club_number=10).homepage_nid == 100

    def test_by_nid(self):
        assert find_club(self.BINDINGS, club_nid=2).homepage_nid == 200

    def test_number_preferred_over_nid(self):
        assert find_club(self.BINDINGS, club_number=10, club_nid=2).club_nid == 1

    def test_not_found(self):
        assert find_club(self.BINDINGS, club_number=99) is None

    def test_no_selector(self):
        assert find_club(self.BINDINGS) is None
