"""
Storage backends for snapshots under the target root.

Supports:
- DirectoryStorage: expanded copy of the source, target/<timestamp>/
- TarballStorage: gzip-compressed tar archive, target/<timestamp>.tgz

Both write to a temporary name inside the target root and rename into
place only once every file is written, so a failed or interrupted
capture never leaves a partial snapshot under its final name.
"""

import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from pirouette.context import RunContext
from pirouette.errors import CaptureError, DuplicateSnapshot, TargetUnavailable
from pirouette.models import (
    DIRECTORY,
    OUTPUT_FORMATS,
    TARBALL,
    TARBALL_SUFFIX,
    TEMP_PREFIX,
    Manifest,
    Snapshot,
    format_timestamp,
    parse_timestamp,
    snapshot_name,
)
from .compression import write_tarball


logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when storage operation fails."""
    pass


def _format_size(size: int) -> str:
    return f"{size / 1024 / 1024:.2f} MB"


class StorageBackend:
    """
    Common list/write/delete behaviour. Subclasses provide the
    representation-specific temporary artifact handling.
    """

    kind: str = ''

    def __init__(self, base_path: str, context: Optional[RunContext] = None):
        """
        Initialize storage backend.

        Args:
            base_path: Target root directory
            context: Run context (carries dry-run flag and logging)
        """
        self.base_path = Path(base_path).expanduser()
        self.context = context or RunContext()

    @property
    def dry_run(self) -> bool:
        return self.context.dry_run

    def ensure_available(self):
        """
        Make sure the target root exists and is usable.

        In dry-run a missing target is reported but not created.

        Raises:
            TargetUnavailable: If the target cannot be created or accessed
        """
        if self.base_path.exists() and not self.base_path.is_dir():
            raise TargetUnavailable(f"Target path is a file, not a directory: {self.base_path}")

        if not self.base_path.exists():
            if self.dry_run:
                self._check_creatable()
                self.context.log(f"Target directory {self.base_path} does not exist and would be created")
                return
            try:
                self.base_path.mkdir(parents=True, exist_ok=True)
                self.context.log(f"Created target directory {self.base_path}")
            except OSError as e:
                raise TargetUnavailable(f"Failed to create target directory {self.base_path}: {e}") from e

        mode = os.R_OK | os.X_OK
        if not self.dry_run:
            mode |= os.W_OK
        if not os.access(self.base_path, mode):
            raise TargetUnavailable(f"Permission denied on target directory {self.base_path}")

    def _check_creatable(self):
        """Fail as mkdir would: the nearest existing ancestor must be a writable directory."""
        ancestor = self.base_path.absolute().parent
        while not ancestor.exists() and ancestor != ancestor.parent:
            ancestor = ancestor.parent
        if not ancestor.is_dir():
            raise TargetUnavailable(
                f"Failed to create target directory {self.base_path}: {ancestor} is not a directory"
            )
        if not os.access(ancestor, os.W_OK | os.X_OK):
            raise TargetUnavailable(
                f"Failed to create target directory {self.base_path}: permission denied on {ancestor}"
            )

    def _identify(self, entry: os.DirEntry) -> Optional[Tuple[datetime, str]]:
        """Parse a target entry into (timestamp, kind), or None if it is not a snapshot."""
        name = entry.name
        if entry.is_dir(follow_symlinks=False):
            timestamp = parse_timestamp(name)
            return (timestamp, DIRECTORY) if timestamp else None
        if entry.is_file(follow_symlinks=False) and name.endswith(TARBALL_SUFFIX):
            timestamp = parse_timestamp(name[:-len(TARBALL_SUFFIX)])
            return (timestamp, TARBALL) if timestamp else None
        return None

    def list(self) -> List[Snapshot]:
        """
        List snapshots of this backend's representation.

        Entries that cannot be positively identified are recorded as
        anomalies and left alone. Snapshots of the other representation
        are not counted either.

        Returns:
            Snapshots sorted oldest first

        Raises:
            TargetUnavailable: If the target root cannot be read
        """
        if not self.base_path.exists():
            return []

        try:
            with os.scandir(self.base_path) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            raise TargetUnavailable(f"Failed to list target directory {self.base_path}: {e}") from e

        snapshots = []
        for entry in entries:
            if entry.name.startswith(TEMP_PREFIX):
                self.context.record_anomaly(
                    entry.name, "orphaned temporary artifact from an interrupted run, not removed"
                )
                continue

            identified = self._identify(entry)
            if identified is None:
                self.context.record_anomaly(entry.name, "name is not a snapshot timestamp")
                continue

            timestamp, kind = identified
            if kind != self.kind:
                self.context.log(
                    f"Leaving {entry.name} alone: {kind} snapshot, output format is {self.kind}"
                )
                continue

            snapshots.append(Snapshot(timestamp, kind, Path(entry.path)))

        snapshots.sort(key=lambda s: s.timestamp)
        return snapshots

    def exists(self, timestamp: datetime) -> bool:
        """True if a snapshot of either representation has this timestamp."""
        return any(
            os.path.lexists(self.base_path / snapshot_name(timestamp, kind))
            for kind in OUTPUT_FORMATS
        )

    def write(self, manifest: Manifest, timestamp: datetime) -> Snapshot:
        """
        Materialize a snapshot atomically.

        Args:
            manifest: Files selected for capture
            timestamp: Snapshot timestamp (second resolution)

        Returns:
            The new Snapshot (a descriptor only, in dry-run)

        Raises:
            DuplicateSnapshot: If the timestamp is already taken
            CaptureError: If writing fails; the temporary artifact is removed
        """
        final_path = self.base_path / snapshot_name(timestamp, self.kind)
        snapshot = Snapshot(timestamp, self.kind, final_path)

        if self.exists(timestamp):
            raise DuplicateSnapshot(f"A snapshot for {format_timestamp(timestamp)} already exists in {self.base_path}")

        if self.dry_run:
            self.context.log(
                f"Would write {len(manifest)} files ({_format_size(manifest.total_bytes)}) to {final_path}"
            )
            for entry in manifest:
                logger.debug("Would capture %s", entry.relative_path)
            return snapshot

        temp_path = self._make_temp(timestamp)
        self.context.log(f"Writing {len(manifest)} files to temporary {os.path.basename(temp_path)}")

        try:
            self._write_temp(manifest, temp_path)
            if os.path.lexists(final_path):
                raise CaptureError(f"{final_path} appeared while the snapshot was being written")
            os.rename(temp_path, final_path)
        except Exception as e:
            self._discard(temp_path)
            if isinstance(e, CaptureError):
                raise
            raise CaptureError(f"Failed to write snapshot {final_path.name}: {e}") from e

        self.context.log(f"Created snapshot {final_path.name}")
        return snapshot

    def delete(self, snapshot: Snapshot):
        """
        Delete a snapshot. Deleting an absent snapshot is not an error.

        Args:
            snapshot: Snapshot to remove

        Raises:
            StorageError: If deletion fails
        """
        if self.dry_run:
            self.context.log(f"Would delete snapshot {snapshot}")
            return

        try:
            self._remove(snapshot.path)
        except FileNotFoundError:
            self.context.log(f"Snapshot {snapshot} already absent")
            return
        except OSError as e:
            raise StorageError(f"Failed to delete snapshot {snapshot}: {e}") from e

        self.context.log(f"Deleted snapshot {snapshot}")

    def _discard(self, temp_path: str):
        """Remove a temporary artifact after a failed write."""
        try:
            self._remove(Path(temp_path))
        except FileNotFoundError:
            pass
        except OSError as e:
            self.context.log(f"Warning: failed to remove temporary artifact {temp_path}: {e}", logging.WARNING)

    def _make_temp(self, timestamp: datetime) -> str:
        raise NotImplementedError

    def _write_temp(self, manifest: Manifest, temp_path: str):
        raise NotImplementedError

    def _remove(self, path: Path):
        raise NotImplementedError


class DirectoryStorage(StorageBackend):
    """
    Snapshots as expanded directory trees: target/<timestamp>/<relative path>.

    Files are copied with shutil.copy2, preserving permission bits and
    modification times.
    """

    kind = DIRECTORY

    def _make_temp(self, timestamp: datetime) -> str:
        try:
            return tempfile.mkdtemp(prefix=f"{TEMP_PREFIX}{format_timestamp(timestamp)}-", dir=self.base_path)
        except OSError as e:
            raise CaptureError(f"Failed to create temporary directory in {self.base_path}: {e}") from e

    def _write_temp(self, manifest: Manifest, temp_path: str):
        root = Path(temp_path)
        for entry in manifest:
            dest_path = root / entry.relative_path
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(entry.source_path, dest_path)
            logger.debug("Copied %s", entry.relative_path)

    def _remove(self, path: Path):
        shutil.rmtree(path)


class TarballStorage(StorageBackend):
    """
    Snapshots as gzip-compressed tar archives: target/<timestamp>.tgz.
    """

    kind = TARBALL

    def _make_temp(self, timestamp: datetime) -> str:
        try:
            fd, path = tempfile.mkstemp(
                prefix=f"{TEMP_PREFIX}{format_timestamp(timestamp)}-",
                suffix=TARBALL_SUFFIX,
                dir=self.base_path
            )
        except OSError as e:
            raise CaptureError(f"Failed to create temporary archive in {self.base_path}: {e}") from e
        os.close(fd)
        return path

    def _write_temp(self, manifest: Manifest, temp_path: str):
        size = write_tarball(manifest, temp_path)
        self.context.log(f"Archive written ({_format_size(size)})")

    def _remove(self, path: Path):
        os.remove(path)


def create_storage(output_format: str, base_path: str, context: Optional[RunContext] = None) -> StorageBackend:
    """
    Factory function to create the storage backend for an output format.

    Args:
        output_format: 'directory' or 'tarball'
        base_path: Target root directory
        context: Run context

    Returns:
        DirectoryStorage or TarballStorage instance

    Raises:
        ValueError: If output_format is invalid
    """
    if output_format == DIRECTORY:
        return DirectoryStorage(base_path, context)
    elif output_format == TARBALL:
        return TarballStorage(base_path, context)
    else:
        raise ValueError(f"Invalid output format: {output_format}. Valid options: {list(OUTPUT_FORMATS)}")
