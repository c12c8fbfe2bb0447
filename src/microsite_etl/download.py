"""microsite_etl.download

Fetch the files named in a microsite media manifest.

Manifest entries are public file paths ("/sites/default/files/...") or, for
markup that linked with an absolute URL, full URLs into the same storage.
Each file is written under dest_dir at its URL path, so reruns skip files
already on disk.  A failed fetch is recorded and the run moves on.
"""

from __future__ import annotations

import logging
import urllib.parse
from pathlib import Path

import requests

from microsite_etl.shared import RunCounters

log = logging.getLogger(__name__)


def asset_url(path: str, base_url: str) -> str:
    if path.startswith(("http://", "https://")):
        return path
    return base_url.rstrip("/") + "/" + path.lstrip("/")


def local_path(path: str, dest_dir: Path) -> Path:
    url_path = urllib.parse.urlparse(path).path
    return dest_dir / urllib.parse.unquote(url_path).lstrip("/")


def download_assets(
    paths: list[str],
    base_url: str,
    dest_dir: Path,
    counters: RunCounters,
    session: requests.Session | None = None,
    timeout: int = 30,
) -> list[Path]:
    """Download every distinct manifest path; return the files now on disk."""
    session = session or requests.Session()
    root = dest_dir.resolve()
    written: list[Path] = []
    for path in dict.fromkeys(paths):
        dest = local_path(path, dest_dir)
        if root not in dest.resolve().parents:
            log.warning("Refusing %s: resolves outside %s", path, dest_dir)
            counters.assets_failed += 1
            counters.warnings.append(f"download {path}: resolves outside {dest_dir}")
            continue
        if dest.exists():
            counters.assets_skipped_existing += 1
            written.append(dest)
            continue

        url = asset_url(path, base_url)
        try:
            resp = session.get(url, timeout=timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            log.warning("Download failed for %s: %s", url, exc)
            counters.assets_failed += 1
            counters.warnings.append(f"download {url}: {exc}")
            continue

        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(resp.content)
        counters.assets_fetched += 1
        written.append(dest)
    return written
