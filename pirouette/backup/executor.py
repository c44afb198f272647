"""
Snapshot engine - captures one snapshot of the source per run.

Workflow:
1. Check the source exists and the target is usable
2. Take the snapshot timestamp (UTC, truncated to the second)
3. Refuse to continue if that timestamp is already taken
4. Traverse the source and build the manifest
5. Hand the manifest to the storage backend for an atomic write
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

from pirouette.context import RunContext
from pirouette.errors import DuplicateSnapshot
from pirouette.models import Manifest, Snapshot, format_timestamp
from .filters import PathFilter
from .sources import LocalSource
from .storage import StorageBackend, create_storage


def utc_now() -> datetime:
    """Current wall-clock time in UTC at one-second resolution."""
    return datetime.now(timezone.utc).replace(microsecond=0)


class SnapshotEngine:
    """
    Orchestrates traversal, filtering and the atomic write of a snapshot.
    """

    def __init__(self, storage: StorageBackend, context: Optional[RunContext] = None):
        """
        Initialize snapshot engine.

        Args:
            storage: Backend the snapshot is written to
            context: Run context (default: the storage backend's)
        """
        self.storage = storage
        self.context = context or storage.context
        self.manifest: Optional[Manifest] = None

    def capture(self, source_root: str, include_patterns: Iterable[str] = (),
                exclude_patterns: Iterable[str] = ()) -> Snapshot:
        """
        Capture the source into a new snapshot.

        Args:
            source_root: File or directory to snapshot
            include_patterns: Globs a file must match (empty: all files)
            exclude_patterns: Globs that always reject a path

        Returns:
            The created Snapshot (a descriptor only, in dry-run)

        Raises:
            SourceNotFound: If the source does not exist
            TargetUnavailable: If the target cannot be created or accessed
            DuplicateSnapshot: If a snapshot with this timestamp exists
            CaptureError: If writing the snapshot fails
        """
        source = LocalSource(
            source_root,
            PathFilter(include_patterns, exclude_patterns),
            self.context,
            skip_paths=[str(self.storage.base_path)]
        )
        source.check()
        self.storage.ensure_available()

        timestamp = utc_now()
        if self.storage.exists(timestamp):
            raise DuplicateSnapshot(
                f"A snapshot for {format_timestamp(timestamp)} already exists in {self.storage.base_path}"
            )

        self.context.log(f"Capturing {source.path} as {self.storage.kind} snapshot {format_timestamp(timestamp)}")
        self.manifest = source.scan()
        self.context.log(f"Selected {len(self.manifest)} files")

        return self.storage.write(self.manifest, timestamp)


def capture(source_root: str, target_root: str, include_patterns: Iterable[str] = (),
            exclude_patterns: Iterable[str] = (), output_format: str = 'directory',
            dry_run: bool = False, context: Optional[RunContext] = None) -> Snapshot:
    """
    Capture a snapshot without building the engine by hand.

    Args:
        source_root: File or directory to snapshot
        target_root: Directory holding the snapshots
        include_patterns: Globs a file must match (empty: all files)
        exclude_patterns: Globs that always reject a path
        output_format: 'directory' or 'tarball'
        dry_run: If True, nothing is written
        context: Run context (created if omitted; its dry-run flag is set)

    Returns:
        The created Snapshot
    """
    context = context or RunContext(dry_run=dry_run)
    context.dry_run = dry_run
    storage = create_storage(output_format, target_root, context)
    return SnapshotEngine(storage, context).capture(source_root, include_patterns, exclude_patterns)
