"""
Unit tests for the snapshot engine (pirouette/backup/executor.py).

Tests SnapshotEngine for capturing a source into a new snapshot.
"""

import os
from datetime import datetime, timezone

import pytest
from freezegun import freeze_time

from pirouette.backup.executor import SnapshotEngine, capture, utc_now
from pirouette.backup.storage import DirectoryStorage, TarballStorage
from pirouette.errors import DuplicateSnapshot, SourceNotFound, TargetUnavailable
from pirouette.models import DIRECTORY, TARBALL


class TestUtcNow:
    """Test the snapshot clock."""

    @freeze_time("2024-01-15 12:30:45.987654")
    def test_truncated_to_seconds(self):
        """Test sub-second precision is dropped."""
        assert utc_now() == datetime(2024, 1, 15, 12, 30, 45, tzinfo=timezone.utc)


class TestSnapshotEngine:
    """Test SnapshotEngine class."""

    def test_engine_initialization(self, target_dir, context):
        """Test SnapshotEngine initializes correctly."""
        storage = DirectoryStorage(str(target_dir), context)
        engine = SnapshotEngine(storage)

        assert engine.storage is storage
        assert engine.context is context
        assert engine.manifest is None

    @freeze_time("2024-01-15 12:30:45")
    def test_capture_directory(self, source_tree, target_dir, context):
        """Test a capture creates target/<timestamp>/ from the source."""
        engine = SnapshotEngine(DirectoryStorage(str(target_dir), context))

        snapshot = engine.capture(str(source_tree))

        assert snapshot.name == '20240115123045'
        assert snapshot.kind == DIRECTORY
        assert snapshot.path.is_dir()
        assert (snapshot.path / 'logs' / 'app.log').read_text() == 'log line\n'
        assert len(engine.manifest) == 5

    @freeze_time("2024-01-15 12:30:45")
    def test_capture_tarball(self, source_tree, target_dir, context):
        """Test a capture creates target/<timestamp>.tgz."""
        engine = SnapshotEngine(TarballStorage(str(target_dir), context))

        snapshot = engine.capture(str(source_tree), exclude_patterns=['*.pyc'])

        assert snapshot.kind == TARBALL
        assert snapshot.path == target_dir / '20240115123045.tgz'
        assert snapshot.path.is_file()
        assert 'cache/module.pyc' not in engine.manifest.relative_paths

    @freeze_time("2024-01-15 12:30:45")
    def test_capture_with_filters(self, source_tree, target_dir, context):
        """Test include/exclude rules shape the snapshot contents."""
        engine = SnapshotEngine(DirectoryStorage(str(target_dir), context))

        snapshot = engine.capture(str(source_tree), ['**/*.log'], ['logs/old/**'])

        captured = sorted(
            os.path.relpath(os.path.join(root, name), snapshot.path)
            for root, _, files in os.walk(snapshot.path)
            for name in files
        )
        assert captured == [os.path.join('logs', 'app.log')]

    def test_capture_missing_source(self, tmp_path, target_dir, context):
        """Test a missing source fails before anything is written."""
        engine = SnapshotEngine(DirectoryStorage(str(target_dir), context))

        with pytest.raises(SourceNotFound):
            engine.capture(str(tmp_path / 'missing'))

        assert os.listdir(target_dir) == []

    def test_capture_target_is_file(self, source_tree, tmp_path, context):
        """Test an unusable target fails with TargetUnavailable."""
        target = tmp_path / 'target_file'
        target.write_text('oops')
        engine = SnapshotEngine(DirectoryStorage(str(target), context))

        with pytest.raises(TargetUnavailable):
            engine.capture(str(source_tree))

    def test_capture_twice_in_same_second(self, source_tree, target_dir, context):
        """Test a second capture within the same second is refused."""
        engine = SnapshotEngine(DirectoryStorage(str(target_dir), context))

        with freeze_time("2024-01-15 12:30:45.100000"):
            first = engine.capture(str(source_tree))
        (source_tree / 'readme.txt').write_text('changed')

        with freeze_time("2024-01-15 12:30:45.900000"):
            with pytest.raises(DuplicateSnapshot):
                engine.capture(str(source_tree))

        assert os.listdir(target_dir) == [first.path.name]
        assert (first.path / 'readme.txt').read_text() == 'Read me'

    def test_capture_next_second_succeeds(self, source_tree, target_dir, context):
        """Test captures one second apart produce two snapshots."""
        engine = SnapshotEngine(DirectoryStorage(str(target_dir), context))

        with freeze_time("2024-01-15 12:30:45"):
            engine.capture(str(source_tree))
        with freeze_time("2024-01-15 12:30:46"):
            engine.capture(str(source_tree))

        assert sorted(os.listdir(target_dir)) == ['20240115123045', '20240115123046']

    @freeze_time("2024-01-15 12:30:45")
    def test_capture_single_file_source(self, source_tree, target_dir, context):
        """Test a file source is captured under its own name."""
        engine = SnapshotEngine(DirectoryStorage(str(target_dir), context))

        snapshot = engine.capture(str(source_tree / 'readme.txt'))

        assert os.listdir(snapshot.path) == ['readme.txt']

    @freeze_time("2024-01-15 12:30:45")
    def test_capture_logs(self, source_tree, target_dir, context):
        """Test the engine records what it does in the run context."""
        SnapshotEngine(DirectoryStorage(str(target_dir), context)).capture(str(source_tree))

        assert any('Capturing' in log for log in context.logs)
        assert any('Selected 5 files' in log for log in context.logs)
        assert any('Created snapshot 20240115123045' in log for log in context.logs)


class TestCaptureFunction:
    """Test the capture() convenience function."""

    @freeze_time("2024-01-15 12:30:45")
    def test_capture_dry_run_does_not_mutate(self, source_tree, target_dir, make_snapshot, listing):
        """Test dry-run leaves the target listing identical."""
        make_snapshot(datetime(2024, 1, 1, tzinfo=timezone.utc))
        before = listing(target_dir)

        snapshot = capture(str(source_tree), str(target_dir), output_format='tarball', dry_run=True)

        assert snapshot.path.name == '20240115123045.tgz'
        assert listing(target_dir) == before

    @freeze_time("2024-01-15 12:30:45")
    def test_capture_dry_run_missing_target(self, source_tree, tmp_path):
        """Test dry-run does not create a missing target."""
        target = tmp_path / 'not_yet'

        capture(str(source_tree), str(target), dry_run=True)

        assert not target.exists()

    @freeze_time("2024-01-15 12:30:45")
    def test_capture_real(self, source_tree, target_dir):
        """Test a real capture through the convenience function."""
        snapshot = capture(str(source_tree), str(target_dir))

        assert os.listdir(target_dir) == [snapshot.path.name]
