"""
Source traversal for snapshot capture.

Walks a local file or directory tree and builds the Manifest of files
selected by the include/exclude rules.
"""

import os
from pathlib import Path
from typing import Iterable, Optional

from pirouette.context import RunContext
from pirouette.errors import SourceNotFound
from pirouette.models import Manifest, ManifestEntry
from .filters import PathFilter


class LocalSource:
    """
    Handler for local filesystem sources.

    Traversal is iterative (explicit stack) so arbitrarily deep trees do
    not exhaust the interpreter stack. Symlinks are followed: a link to a
    file is captured as the file's contents, a link to a directory is
    descended into, even when the same directory is also reached by its
    real path. A link back to one of its own ancestors is skipped, which
    breaks symlink cycles.
    """

    def __init__(self, path: str, path_filter: Optional[PathFilter] = None,
                 context: Optional[RunContext] = None, skip_paths: Iterable[str] = ()):
        """
        Initialize local source handler.

        Args:
            path: File or directory to snapshot
            path_filter: Include/exclude rules (default: everything)
            context: Run context for logging and skipped-path reporting
            skip_paths: Directories never descended into (e.g. a target
                located inside the source)
        """
        self.path = Path(path).expanduser()
        self.path_filter = path_filter or PathFilter()
        self.context = context or RunContext()
        self.skip_paths = {os.path.realpath(p) for p in skip_paths}

    def check(self):
        """
        Raises:
            SourceNotFound: If the source path does not exist
        """
        if not self.path.exists():
            raise SourceNotFound(f"Source path does not exist: {self.path}")

    def scan(self) -> Manifest:
        """
        Build the manifest of files to capture.

        Returns:
            Manifest with entries in deterministic traversal order

        Raises:
            SourceNotFound: If the source path does not exist
        """
        self.check()
        manifest = Manifest(source_root=self.path)

        if not self.path.is_dir():
            relative_path = self.path.name
            if self.path_filter.matches(relative_path):
                manifest.add(ManifestEntry(relative_path, self.path, self.path.stat().st_size))
            else:
                self.context.log(f"Source file {relative_path} is excluded by filters")
            return manifest

        root_stat = self.path.stat()
        # Each frame carries the (st_dev, st_ino) keys of its own ancestors
        stack = [(self.path, '', frozenset({(root_stat.st_dev, root_stat.st_ino)}))]

        while stack:
            directory, prefix, ancestors = stack.pop()

            try:
                with os.scandir(directory) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                self.context.record_skipped(prefix or '.', f"cannot read directory ({e.strerror or e})")
                continue

            subdirectories = []
            for entry in entries:
                relative_path = f"{prefix}/{entry.name}" if prefix else entry.name
                try:
                    if entry.is_dir(follow_symlinks=True):
                        if self.path_filter.is_excluded(relative_path):
                            self.context.log(f"Excluding directory {relative_path}")
                            continue
                        if os.path.realpath(entry.path) in self.skip_paths:
                            self.context.record_skipped(relative_path, "snapshot target lives inside the source")
                            continue
                        stat = entry.stat(follow_symlinks=True)
                        key = (stat.st_dev, stat.st_ino)
                        if key in ancestors:
                            self.context.record_skipped(relative_path, "symlink loop back to an ancestor directory")
                            continue
                        subdirectories.append((Path(entry.path), relative_path, ancestors | {key}))
                    elif entry.is_file(follow_symlinks=True):
                        if self.path_filter.matches(relative_path):
                            size = entry.stat(follow_symlinks=True).st_size
                            manifest.add(ManifestEntry(relative_path, Path(entry.path), size))
                    elif entry.is_symlink():
                        self.context.record_skipped(relative_path, "dangling symlink")
                    else:
                        self.context.record_skipped(relative_path, "not a regular file")
                except OSError as e:
                    self.context.record_skipped(relative_path, str(e))

            # Reversed so the stack pops subdirectories in name order
            stack.extend(reversed(subdirectories))

        return manifest


def build_manifest(source_root: str, include_patterns: Iterable[str] = (),
                   exclude_patterns: Iterable[str] = (), context: Optional[RunContext] = None,
                   skip_paths: Iterable[str] = ()) -> Manifest:
    """
    Traverse a source and return the manifest of selected files.

    Args:
        source_root: File or directory to snapshot
        include_patterns: Globs a file must match (empty: all files)
        exclude_patterns: Globs that reject a file or prune a directory
        context: Run context
        skip_paths: Directories never descended into

    Returns:
        Manifest

    Raises:
        SourceNotFound: If source_root does not exist
    """
    source = LocalSource(
        source_root,
        PathFilter(include_patterns, exclude_patterns),
        context,
        skip_paths
    )
    return source.scan()
