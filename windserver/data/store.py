"""
File-based artifact store for harvested GFS snapshots.

Two directories live under the data root:
  - ``grib-data/<stamp>.f000``  raw GRIB2 download (transient)
  - ``json-data/<stamp>.json``  converted, servable snapshot

A stamp is only visible to lookups once its ``.json`` file exists. Both
forms are written to a ``.tmp`` sibling first and renamed into place, so a
half-written artifact is never listed. Writes, conversion and deletion of
the same stamp are serialized by a per-stamp lock; different stamps never
block each other.
"""

import logging
import threading
import weakref
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

from windserver.errors import ConversionError, StoreError
from windserver.grid import INTERVAL_HOURS, Stamp, age_days

logger = logging.getLogger(__name__)


class ArtifactStore:
    """Maps canonical stamps to raw / servable artifacts on disk."""

    RAW_DIRNAME = "grib-data"
    SERVABLE_DIRNAME = "json-data"
    RAW_SUFFIX = ".f000"
    SERVABLE_SUFFIX = ".json"

    def __init__(self, root, converter=None, interval_hours: int = INTERVAL_HOURS):
        """
        Args:
            root: Data directory holding the raw and servable subdirectories
            converter: SnapshotConverter used by convert_raw_to_servable
            interval_hours: Grid spacing used when parsing file names
        """
        self.root = Path(root)
        self.converter = converter
        self.interval_hours = interval_hours
        self.raw_dir = self.root / self.RAW_DIRNAME
        self.servable_dir = self.root / self.SERVABLE_DIRNAME

        # Entries vanish once no thread holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

        try:
            self.raw_dir.mkdir(parents=True, exist_ok=True)
            self.servable_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot create artifact directories under {self.root}: {e}") from e

    # -- paths -------------------------------------------------------------

    def raw_path(self, stamp: Stamp) -> Path:
        return self.raw_dir / f"{stamp}{self.RAW_SUFFIX}"

    def servable_path(self, stamp: Stamp) -> Path:
        return self.servable_dir / f"{stamp}{self.SERVABLE_SUFFIX}"

    @contextmanager
    def stamp_lock(self, stamp: Stamp):
        """Hold the lock for a single stamp."""
        key = str(stamp)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
        with lock:
            yield

    # -- existence ---------------------------------------------------------

    def exists(self, stamp: Stamp) -> bool:
        """True if a servable artifact exists for ``stamp``."""
        return self.servable_path(stamp).is_file()

    def raw_exists(self, stamp: Stamp) -> bool:
        return self.raw_path(stamp).is_file()

    # -- writes ------------------------------------------------------------

    def write_raw(self, stamp: Stamp, data: bytes) -> bool:
        """
        Store the raw download for ``stamp``.

        An existing raw artifact is never rewritten.

        Returns:
            True if the file was written, False if it was already present
        """
        path = self.raw_path(stamp)
        with self.stamp_lock(stamp):
            if path.is_file():
                logger.debug(f"Raw artifact {path.name} already present, not rewriting")
                return False
            tmp = path.with_name(path.name + ".tmp")
            try:
                tmp.write_bytes(data)
                tmp.replace(path)
            except OSError as e:
                tmp.unlink(missing_ok=True)
                raise StoreError(f"Failed to write {path}: {e}") from e

        logger.info(f"Raw artifact saved: {path.name} ({len(data)} bytes)")
        return True

    def convert_raw_to_servable(self, stamp: Stamp) -> Path:
        """
        Convert the raw artifact for ``stamp`` into its servable JSON form.

        The raw file is deleted once the servable file is in place.

        Raises:
            StoreError: raw artifact missing or filesystem failure
            ConversionError: the converter rejected the input
        """
        if self.converter is None:
            raise StoreError("No converter configured for this store")

        raw = self.raw_path(stamp)
        target = self.servable_path(stamp)
        tmp = target.with_name(target.name + ".tmp")

        with self.stamp_lock(stamp):
            if not raw.is_file():
                raise StoreError(f"No raw artifact to convert for {stamp}")
            try:
                self.converter.convert(stamp, raw, tmp)
                if not tmp.is_file():
                    raise ConversionError(stamp, "converter produced no output")
                tmp.replace(target)
            except ConversionError:
                tmp.unlink(missing_ok=True)
                raise
            except OSError as e:
                tmp.unlink(missing_ok=True)
                raise StoreError(f"Failed to publish {target}: {e}") from e

            try:
                raw.unlink(missing_ok=True)
            except OSError as e:
                raise StoreError(f"Converted {stamp} but could not remove {raw}: {e}") from e

        logger.info(f"Servable artifact published: {target.name}")
        return target

    # -- enumeration -------------------------------------------------------

    def _scan(self, directory: Path, suffix: str) -> List[Stamp]:
        stamps = []
        try:
            entries = list(directory.glob(f"*{suffix}"))
        except OSError as e:
            raise StoreError(f"Cannot list {directory}: {e}") from e
        for p in entries:
            try:
                stamps.append(Stamp.parse(p.stem, self.interval_hours))
            except ValueError:
                logger.debug(f"Ignoring unrecognised file {p.name}")
        return stamps

    def list_servable(self) -> List[Stamp]:
        """Stamps with a servable artifact (unordered)."""
        return self._scan(self.servable_dir, self.SERVABLE_SUFFIX)

    def list_raw(self) -> List[Stamp]:
        return self._scan(self.raw_dir, self.RAW_SUFFIX)

    def count(self) -> int:
        return len(self.list_servable())

    def newest(self) -> Optional[Stamp]:
        stamps = self.list_servable()
        return max(stamps) if stamps else None

    # -- deletion ----------------------------------------------------------

    def _delete_file(self, stamp: Stamp, path: Path) -> bool:
        with self.stamp_lock(stamp):
            if not path.exists():
                return False
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            except OSError as e:
                raise StoreError(f"Failed to delete {path}: {e}") from e
        return True

    def delete(self, stamp: Stamp) -> bool:
        """Delete the servable artifact for ``stamp``; False if absent."""
        return self._delete_file(stamp, self.servable_path(stamp))

    def discard_raw(self, stamp: Stamp) -> bool:
        """Delete the raw download for ``stamp``; False if absent."""
        return self._delete_file(stamp, self.raw_path(stamp))

    def delete_if_older_than(self, max_age: timedelta, now: datetime) -> int:
        """
        Delete servable artifacts whose stamp is older than ``max_age``.

        Returns:
            Number of artifacts deleted
        """
        limit = max_age.total_seconds() / 86400.0
        deleted = 0
        for stamp in self.list_servable():
            if age_days(stamp, now) > limit and self.delete(stamp):
                logger.info(f"Retention: deleted {stamp}{self.SERVABLE_SUFFIX}")
                deleted += 1
        return deleted

    def delete_raw_older_than(self, max_age: timedelta, now: datetime) -> int:
        """Remove raw downloads that were never converted and have aged out."""
        limit = max_age.total_seconds() / 86400.0
        deleted = 0
        for stamp in self.list_raw():
            if age_days(stamp, now) > limit and self._delete_file(stamp, self.raw_path(stamp)):
                logger.info(f"Retention: deleted orphaned raw {stamp}{self.RAW_SUFFIX}")
                deleted += 1
        return deleted
