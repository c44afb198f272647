"""
Gzip-compressed tar archives for tarball snapshots.
"""

import os
import tarfile

from pirouette.models import Manifest


class CompressionError(Exception):
    """Raised when archive creation fails."""
    pass


def write_tarball(manifest: Manifest, archive_path: str, compresslevel: int = 9) -> int:
    """
    Stream every manifest entry into a gzip-compressed tar archive.

    Members are stored under their relative path, so extracting the
    archive reproduces the source tree. Symlinks are dereferenced.

    Args:
        manifest: Files selected for the snapshot
        archive_path: Output archive path (written in place, the caller
            is responsible for atomic placement)
        compresslevel: gzip compression level

    Returns:
        Size of the written archive in bytes

    Raises:
        CompressionError: If archive creation fails
    """
    try:
        with open(archive_path, 'wb') as f:
            with tarfile.open(fileobj=f, mode='w:gz', compresslevel=compresslevel,
                              dereference=True) as tar:
                for entry in manifest:
                    tar.add(str(entry.source_path), arcname=entry.relative_path, recursive=False)
            f.flush()
            os.fsync(f.fileno())
    except (OSError, tarfile.TarError) as e:
        raise CompressionError(f"Failed to create archive {archive_path}: {e}") from e

    return os.path.getsize(archive_path)
