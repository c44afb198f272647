"""
Shared pytest fixtures for Pirouette tests.

This module provides fixtures for:
- Source trees to capture
- Target directories with pre-existing snapshots
- Run contexts
- Configuration files
"""

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from pirouette.context import RunContext
from pirouette.models import DIRECTORY, TARBALL, RetentionPolicy, Snapshot, snapshot_name


def target_listing(path):
    """Sorted names directly under a directory, for before/after comparisons."""
    return sorted(os.listdir(path))


@pytest.fixture
def listing():
    """Return the target_listing helper."""
    return target_listing


@pytest.fixture
def source_tree(tmp_path):
    """
    Create a source directory to snapshot.

    Creates:
    - readme.txt
    - run.sh (mode 0755)
    - logs/app.log
    - logs/old/app.1.log
    - cache/module.pyc (excluded in filter tests)
    """
    source = tmp_path / 'source'
    source.mkdir()
    (source / 'readme.txt').write_text('Read me')
    (source / 'run.sh').write_text('#!/bin/sh\necho hi\n')
    os.chmod(source / 'run.sh', 0o755)

    logs = source / 'logs'
    (logs / 'old').mkdir(parents=True)
    (logs / 'app.log').write_text('log line\n')
    (logs / 'old' / 'app.1.log').write_text('older log line\n')

    cache = source / 'cache'
    cache.mkdir()
    (cache / 'module.pyc').write_bytes(b'compiled python')

    return source


@pytest.fixture
def target_dir(tmp_path):
    """Empty target directory."""
    target = tmp_path / 'target'
    target.mkdir()
    return target


@pytest.fixture
def context():
    """Run context for a real (non dry-run) pass."""
    return RunContext()


@pytest.fixture
def dry_context():
    """Run context for a dry-run pass."""
    return RunContext(dry_run=True)


@pytest.fixture
def make_snapshot(target_dir):
    """
    Factory creating an on-disk snapshot in the target directory.

    Usage: make_snapshot(datetime(...), kind='directory') -> Snapshot
    """
    def _make(moment, kind=DIRECTORY, base=None):
        base = Path(base or target_dir)
        path = base / snapshot_name(moment, kind)
        if kind == TARBALL:
            path.write_bytes(b'not really gzip')
        else:
            path.mkdir()
            (path / 'file.txt').write_text('snapshot content')
        return Snapshot(moment.astimezone(timezone.utc), kind, path)

    return _make


@pytest.fixture
def now():
    """Fixed reference time used with freeze_time."""
    return datetime(2024, 1, 15, 12, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def aged_history(now):
    """Snapshots at ages 0h, 1h, 2h, 25h, 49h and 8 days (not on disk)."""
    ages = [
        timedelta(hours=0),
        timedelta(hours=1),
        timedelta(hours=2),
        timedelta(hours=25),
        timedelta(hours=49),
        timedelta(days=8),
    ]
    return [
        Snapshot(now - age, DIRECTORY, Path('/target') / snapshot_name(now - age, DIRECTORY))
        for age in ages
    ]


@pytest.fixture
def policy():
    """Policy from the rotation scenario: 2 hours, 1 day."""
    return RetentionPolicy.from_mapping({'hours': 2, 'days': 1})


@pytest.fixture
def write_config(tmp_path):
    """
    Factory writing a pirouette.toml file.

    Usage: write_config(source, target, retention={'hours': 2}, options={...}, source_extra='...')
    """
    def _write(source, target, retention=None, options=None, source_extra=''):
        retention = {'hours': 2, 'days': 1} if retention is None else retention
        lines = [
            '[source]',
            f'path = "{source}"',
        ]
        if source_extra:
            lines.append(source_extra)
        lines += [
            '',
            '[target]',
            f'path = "{target}"',
            '',
            '[retention]',
        ]
        lines += [f'{key} = {value}' for key, value in retention.items()]
        if options:
            lines += ['', '[options]']
            for key, value in options.items():
                if isinstance(value, bool):
                    value = 'true' if value else 'false'
                elif isinstance(value, str):
                    value = f'"{value}"'
                lines.append(f'{key} = {value}')

        config_path = tmp_path / 'pirouette.toml'
        config_path.write_text('\n'.join(lines) + '\n')
        return config_path

    return _write
