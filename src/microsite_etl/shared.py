"""microsite_etl.shared

Shared utilities used by every microsite extraction mode.
Includes the exception taxonomy, RunCounters, and report-writing support.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class OverrideConfigError(ValueError):
    """Raised when the club/homepage override file fails schema validation."""


class ClubNotFoundError(LookupError):
    """Raised when a requested club has no microsite binding."""


# ---------------------------------------------------------------------------
# RunCounters
# ---------------------------------------------------------------------------

@dataclass
class RunCounters:
    bindings_read: int = 0
    microsites_resolved: int = 0
    microsites_without_menu: int = 0
    pages_resolved: int = 0
    media_urls_found: int = 0
    assets_fetched: int = 0
    assets_skipped_existing: int = 0
    assets_failed: int = 0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in self.__dict__.items() if k != "warnings"}
        d["warnings"] = self.warnings[:50]
        return d


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    params: dict[str, Any],
    counters: RunCounters,
    reports_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.utcnow().isoformat(),
        **params,
        "counters": counters.to_dict(),
    }
    report_path = reports_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
