"""
Backup module for Pirouette.

This module handles the core snapshot functionality including:
- Include/exclude path filtering
- Source traversal
- Storage (expanded directory and tarball)
- Snapshot capture orchestration
- Retention policy enforcement
"""

from .executor import SnapshotEngine, capture
from .filters import PathFilter, matches
from .sources import LocalSource, build_manifest
from .compression import write_tarball
from .storage import DirectoryStorage, TarballStorage, StorageBackend, create_storage
from .retention import RetentionEngine, select_retained

__all__ = [
    'SnapshotEngine',
    'capture',
    'PathFilter',
    'matches',
    'LocalSource',
    'build_manifest',
    'write_tarball',
    'DirectoryStorage',
    'TarballStorage',
    'StorageBackend',
    'create_storage',
    'RetentionEngine',
    'select_retained'
]
