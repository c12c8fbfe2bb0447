"""microsite_etl.cli

Unified microsite extraction CLI.

Modes:
    list      -- all club → homepage bindings as JSON
    slugs     -- URL slug of each club's homepage as JSON
    pages     -- page summaries for one club (--club or --nid) as JSON
    export    -- full microsites (one club, or all) written as JSON files
    download  -- fetch the media manifest of an exported microsite

Connections are opened in autocommit mode; nothing is ever written to the
Drupal store.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Any

import click
import psycopg

from microsite_etl.bindings import (
    ClubMicrosite,
    OverrideSet,
    club_slugs,
    clubs_with_microsites,
    find_club,
    resolve_overrides,
)
from microsite_etl.download import download_assets
from microsite_etl.microsites import Microsite, pages_for_club, resolve_microsites
from microsite_etl.shared import (
    ClubNotFoundError,
    OverrideConfigError,
    RunCounters,
    write_run_report,
)

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _fatal(run_id: str, message: str) -> None:
    click.echo(f"[{run_id}] FATAL: {message}", err=True)
    sys.exit(1)


def _select_club(
    bindings: list[ClubMicrosite],
    club_number: int | None,
    club_nid: int | None,
) -> ClubMicrosite:
    if club_number is None and club_nid is None:
        raise ClubNotFoundError("Either --club or --nid is required")
    club = find_club(bindings, club_number=club_number, club_nid=club_nid)
    if club is None:
        if club_number is not None:
            raise ClubNotFoundError(f"Club {club_number} not found or has no microsite")
        raise ClubNotFoundError(f"Club nid {club_nid} not found or has no microsite")
    return club


def _matching_bindings(bindings: list[ClubMicrosite], club: ClubMicrosite) -> list[ClubMicrosite]:
    return [b for b in bindings if b.club_nid == club.club_nid]


def _output_name(site: Microsite, fanned_out: bool) -> str:
    """File name for an exported microsite; fanned-out clubs get one file per homepage."""
    stem = site.slug.replace("/", "-") if site.slug else f"club-{site.club.club_nid}"
    if fanned_out:
        stem = f"{stem}-{site.club.homepage_nid}"
    return stem + ".json"


def _read_manifest(path: Path) -> list[str]:
    """Paths from an exported microsite JSON file, or one path per line of a text file."""
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"{path} is not an exported microsite (expected a JSON object).")
        return list(data.get("media_manifest") or [])
    return [line.strip() for line in text.splitlines() if line.strip()]


def _validate_download_flags(
    manifest_path: str | None,
    base_url: str | None,
    run_id: str,
) -> None:
    required = {"--manifest": manifest_path, "--base-url": base_url}
    missing = [k for k, v in required.items() if v is None]
    if missing:
        _fatal(run_id, f"download mode requires: {', '.join(missing)}")


# ---------------------------------------------------------------------------
# Unified CLI
# ---------------------------------------------------------------------------

@click.command()
@click.option(
    "--mode",
    default="list",
    type=click.Choice(["list", "slugs", "pages", "export", "download"]),
    show_default=True,
    help="Extraction mode",
)
@click.option("--db-dsn", envvar="MICROSITE_DB_DSN", default=None, help="PostgreSQL DSN of the Drupal store")
@click.option(
    "--overrides-file",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML file of club/homepage override pairs (default: config/microsite_overrides.yml)",
)
@click.option("--club", "club_number", default=None, type=int, help="[pages|export] Club number")
@click.option("--nid", "club_nid", default=None, type=int, help="[pages|export] Club node ID (intraclubs)")
@click.option("--depth", default=1, type=click.IntRange(min=1), show_default=True, help="[pages|export] Menu levels below the homepage")
@click.option("--escape-html", is_flag=True, default=False, help="[pages|export] Escape paragraph headlines and buttons")
@click.option("--out-dir", default="./artifacts/microsites", type=click.Path(), show_default=True, help="[export] Output directory")
@click.option("--workers", default=4, type=click.IntRange(min=1), show_default=True, help="[export] Parallel microsite workers")
@click.option("--manifest", "manifest_path", default=None, type=click.Path(exists=True, dir_okay=False), help="[download] Exported microsite JSON or path list")
@click.option("--base-url", default=None, help="[download] Site root, e.g. https://example.org")
@click.option("--dest-dir", default="./artifacts/media", type=click.Path(), show_default=True, help="[download] Media destination")
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    show_default=True,
)
def main(
    mode: str,
    db_dsn: str | None,
    overrides_file: str | None,
    club_number: int | None,
    club_nid: int | None,
    depth: int,
    escape_html: bool,
    out_dir: str,
    workers: int,
    manifest_path: str | None,
    base_url: str | None,
    dest_dir: str,
    run_id: str | None,
    log_level: str,
) -> None:
    """Unified microsite extraction CLI."""
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.utcnow().isoformat()
    counters = RunCounters()

    click.echo(f"[{run_id}] Starting {mode} run", err=True)

    if mode == "download":
        _validate_download_flags(manifest_path, base_url, run_id)
        try:
            paths = _read_manifest(Path(manifest_path))  # type: ignore[arg-type]
        except ValueError as exc:
            _fatal(run_id, f"invalid manifest: {exc}")
        download_assets(paths, base_url, Path(dest_dir), counters)  # type: ignore[arg-type]
        click.echo(
            f"[{run_id}] fetched={counters.assets_fetched} "
            f"skipped={counters.assets_skipped_existing} failed={counters.assets_failed}",
            err=True,
        )
        report_path = write_run_report(
            run_id, started_at, mode,
            {"manifest": manifest_path, "base_url": base_url, "dest_dir": dest_dir},
            counters,
        )
        click.echo(f"[{run_id}] Run report: {report_path}", err=True)
        if counters.assets_failed:
            sys.exit(1)
        return

    if not db_dsn:
        _fatal(run_id, "--db-dsn (or MICROSITE_DB_DSN) is required")

    try:
        overrides = resolve_overrides(Path(overrides_file) if overrides_file else None)
    except OverrideConfigError as exc:
        _fatal(run_id, f"invalid overrides file: {exc}")

    conn = psycopg.connect(db_dsn, autocommit=True)
    try:
        bindings = clubs_with_microsites(conn, overrides)
        counters.bindings_read = len(bindings)

        if mode == "list":
            _echo_json([b.to_dict() for b in bindings])
            return

        if mode == "slugs":
            _echo_json([
                {"club_nid": s.club_nid, "homepage_nid": s.homepage_nid, "slug": s.slug}
                for s in club_slugs(conn, overrides)
            ])
            return

        if club_number is not None or club_nid is not None or mode == "pages":
            try:
                club = _select_club(bindings, club_number, club_nid)
            except ClubNotFoundError as exc:
                _fatal(run_id, str(exc))
            matches = _matching_bindings(bindings, club)
            if len(matches) > 1:
                click.echo(
                    f"[{run_id}] WARNING: club {club.club_nid} has {len(matches)} homepages; "
                    f"using homepage {club.homepage_nid}",
                    err=True,
                )
            selected = [club]
        else:
            selected = bindings

        if mode == "pages":
            pages = pages_for_club(conn, selected[0].homepage_nid, depth=depth, escape=escape_html)
            _echo_json([
                {
                    "nid": p.nid,
                    "title": p.title,
                    "status": p.status,
                    "menu_title": p.menu_title,
                    "menu_weight": p.menu_weight,
                    "body_length": len(p.body_html),
                    "media_urls": p.media_urls,
                }
                for p in pages
            ])
            return

        slugs = {s.homepage_nid: s.slug for s in club_slugs(conn, overrides)}
    finally:
        conn.close()

    _run_export(
        run_id, started_at, db_dsn, overrides, selected, slugs,  # type: ignore[arg-type]
        depth=depth,
        escape=escape_html,
        out_dir=Path(out_dir),
        workers=workers,
        counters=counters,
    )


def _run_export(
    run_id: str,
    started_at: str,
    db_dsn: str,
    overrides: OverrideSet,
    clubs: list[ClubMicrosite],
    slugs: dict[int, str],
    depth: int,
    escape: bool,
    out_dir: Path,
    workers: int,
    counters: RunCounters,
) -> None:
    click.echo(f"[{run_id}] Resolving {len(clubs)} microsites with {workers} workers", err=True)
    microsites = resolve_microsites(
        lambda: psycopg.connect(db_dsn, autocommit=True),
        clubs,
        slugs=slugs,
        depth=depth,
        escape=escape,
        max_workers=workers,
    )

    homepages_per_club = Counter(club.club_nid for club in clubs)
    out_dir.mkdir(parents=True, exist_ok=True)
    for site in microsites:
        counters.microsites_resolved += 1
        counters.pages_resolved += len(site.pages)
        counters.media_urls_found += len(site.media_manifest)
        if not site.has_menu:
            counters.microsites_without_menu += 1
            counters.warnings.append(
                f"club {site.club.club_nid}: homepage {site.club.homepage_nid} has no menu entry"
            )
        dest = out_dir / _output_name(site, homepages_per_club[site.club.club_nid] > 1)
        dest.write_text(json.dumps(site.to_dict(), indent=2, default=str), encoding="utf-8")

    click.echo(
        f"[{run_id}] microsites={counters.microsites_resolved} "
        f"pages={counters.pages_resolved} media={counters.media_urls_found}",
        err=True,
    )
    report_path = write_run_report(
        run_id, started_at, "export",
        {
            "out_dir": str(out_dir),
            "depth": depth,
            "overrides_source": overrides.source,
            "overrides_hash": overrides.yaml_hash,
        },
        counters,
    )
    click.echo(f"[{run_id}] Run report: {report_path}", err=True)


if __name__ == "__main__":
    main()
