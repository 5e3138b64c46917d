"""Offline-first download cache for dataset archives."""

from __future__ import annotations

import hashlib
import json
import logging
import time
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Mapping, MutableMapping

from .utils import resolve_cache_dir

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"


class CacheError(RuntimeError):
    """Raised when a dataset archive cannot be fetched or validated."""


def sha256sum(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(8192), b""):
            digest.update(chunk)
    return digest.hexdigest()


@dataclass
class CacheManifest:
    """Provenance record of every archive placed in the cache directory."""

    cache_dir: Path
    entries: MutableMapping[str, Mapping[str, object]] = field(init=False, default_factory=dict)

    def __post_init__(self) -> None:
        self.cache_dir = Path(self.cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._path = self.cache_dir / MANIFEST_NAME
        if self._path.exists():
            try:
                self.entries = json.loads(self._path.read_text())
            except json.JSONDecodeError:
                logger.warning("Ignoring unreadable cache manifest %s", self._path)
                self.entries = {}

    def record(self, name: str, metadata: Mapping[str, object]) -> None:
        snapshot = dict(metadata)
        snapshot.setdefault("recorded_at", time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()))
        self.entries[name] = snapshot
        self._path.write_text(json.dumps(self.entries, indent=2, sort_keys=True))

    def get(self, name: str) -> Mapping[str, object] | None:
        return self.entries.get(name)


def fetch(
    name: str,
    url: str,
    *,
    checksum: str | None = None,
    mirrors: Iterable[str] = (),
    filename: str | None = None,
    offline: bool = False,
    offline_path: Path | None = None,
    offline_builder: Callable[[Path], None] | None = None,
    retries: int = 2,
    cache_dir: str | Path | None = None,
    manifest: CacheManifest | None = None,
) -> tuple[Path, Mapping[str, object]]:
    """Return a local path for ``url``, downloading into the cache if needed.

    In offline mode the archive is built by ``offline_builder`` at
    ``offline_path`` instead. A failed download falls back to the offline
    builder when one is given.
    """

    root = resolve_cache_dir(cache_dir)
    manifest = manifest or CacheManifest(root)

    if offline:
        if offline_path is None:
            raise CacheError(f"Offline mode requested for {name!r} but no offline_path provided")
        path = _ensure_offline(offline_path, offline_builder)
        record = _make_record(name, url, path, None, mode="offline")
        manifest.record(name, record)
        return path, record

    target = root / (filename or Path(url).name)
    if target.exists():
        record = _make_record(name, url, target, None, mode="cache")
        if checksum and record["checksum"] != checksum:
            logger.warning("Cached %s failed checksum validation, re-downloading", target)
            target.unlink()
        else:
            manifest.record(name, record)
            return target, record

    last_error: Exception | None = None
    for source in [url, *mirrors]:
        for attempt in range(retries + 1):
            try:
                logger.info("Downloading %s from %s (attempt %d)", name, source, attempt + 1)
                path = _download(source, target)
                record = _make_record(name, source, path, checksum, mode="download")
                manifest.record(name, record)
                return path, record
            except (OSError, CacheError) as exc:
                last_error = exc
                logger.warning("Download of %s from %s failed: %s", name, source, exc)
                time.sleep(min(2**attempt, 5))
        target.unlink(missing_ok=True)

    if offline_path is not None:
        path = _ensure_offline(offline_path, offline_builder)
        record = _make_record(name, url, path, None, mode="offline-fallback")
        manifest.record(name, record)
        return path, record

    raise CacheError(f"Failed to fetch {name!r}: {last_error}")


def _download(url: str, target: Path) -> Path:
    target.parent.mkdir(parents=True, exist_ok=True)
    with urllib.request.urlopen(url) as response, target.open("wb") as handle:
        handle.write(response.read())
    return target


def _ensure_offline(path: Path, builder: Callable[[Path], None] | None) -> Path:
    path = Path(path)
    if builder is not None and not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        builder(path)
    if not path.exists():
        raise CacheError(f"Offline fixture missing: {path}")
    return path


def _make_record(
    name: str, url: str, path: Path, checksum: str | None, *, mode: str
) -> Mapping[str, object]:
    digest = sha256sum(path)
    if checksum and digest != checksum:
        raise CacheError(f"Checksum mismatch for {name!r}: {digest} != {checksum}")
    return {
        "name": name,
        "url": url,
        "local_path": str(path),
        "checksum": digest,
        "mode": mode,
    }


__all__ = ["CacheError", "CacheManifest", "fetch", "sha256sum"]
