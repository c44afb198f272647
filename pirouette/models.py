"""
Value types shared by the snapshot and retention engines.

Snapshots are identified by a UTC timestamp encoded in their name
(YYYYMMDDHHmmss), so lexicographic order of names equals chronological
order.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional


TIMESTAMP_FORMAT = '%Y%m%d%H%M%S'
TARBALL_SUFFIX = '.tgz'
TEMP_PREFIX = '.pirouette-tmp-'

# Representation kinds, keyed by the `output_format` option
DIRECTORY = 'directory'
TARBALL = 'tarball'
OUTPUT_FORMATS = (DIRECTORY, TARBALL)

# Granularities, finest first. Config keys are the plural forms.
GRANULARITIES = ('hour', 'day', 'week', 'month', 'year')
RETENTION_KEYS = {
    'hours': 'hour',
    'days': 'day',
    'weeks': 'week',
    'months': 'month',
    'years': 'year',
}

_TIMESTAMP_RE = re.compile(r'^\d{14}$')


def format_timestamp(moment: datetime) -> str:
    """Encode a moment as a snapshot name stem, in UTC."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(stem: str) -> Optional[datetime]:
    """
    Decode a snapshot name stem.

    Args:
        stem: Candidate name without any extension

    Returns:
        Timezone-aware UTC datetime, or None if the stem is not a valid
        YYYYMMDDHHmmss timestamp
    """
    if not _TIMESTAMP_RE.match(stem):
        return None
    try:
        parsed = datetime.strptime(stem, TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc)


def snapshot_name(moment: datetime, kind: str) -> str:
    """Build the on-disk entry name for a snapshot of the given kind."""
    stem = format_timestamp(moment)
    if kind == TARBALL:
        return f"{stem}{TARBALL_SUFFIX}"
    return stem


@dataclass(frozen=True)
class Snapshot:
    """One immutable, timestamped copy of the source under the target root."""

    timestamp: datetime
    kind: str
    path: Path

    @property
    def name(self) -> str:
        """Identity of the snapshot: its encoded timestamp."""
        return format_timestamp(self.timestamp)

    def __str__(self):
        return self.path.name


@dataclass(frozen=True)
class RetentionTier:
    """Keep the most recent `keep` distinct buckets of `granularity`."""

    granularity: str
    keep: int

    def __post_init__(self):
        if self.granularity not in GRANULARITIES:
            raise ValueError(
                f"Invalid granularity: {self.granularity}. "
                f"Valid options: {list(GRANULARITIES)}"
            )
        if isinstance(self.keep, bool) or not isinstance(self.keep, int) or self.keep < 1:
            raise ValueError(f"Keep-count for {self.granularity} must be an integer >= 1")


@dataclass(frozen=True)
class RetentionPolicy:
    """Ordered set of retention tiers, finest granularity first."""

    tiers: tuple = ()

    @classmethod
    def from_mapping(cls, retention: Mapping[str, int]) -> 'RetentionPolicy':
        """
        Build a policy from the `[retention]` table of the config file.

        Args:
            retention: Mapping of plural granularity ('hours', 'days', ...) to keep-count

        Raises:
            ValueError: If a key or keep-count is invalid
        """
        tiers = []
        for key, keep in retention.items():
            if key not in RETENTION_KEYS:
                raise ValueError(
                    f"Unknown retention period: {key}. "
                    f"Valid options: {list(RETENTION_KEYS)}"
                )
            tiers.append(RetentionTier(RETENTION_KEYS[key], keep))
        tiers.sort(key=lambda tier: GRANULARITIES.index(tier.granularity))
        return cls(tuple(tiers))

    def as_dict(self) -> Dict[str, int]:
        return {tier.granularity: tier.keep for tier in self.tiers}

    def __len__(self):
        return len(self.tiers)

    def __iter__(self) -> Iterator[RetentionTier]:
        return iter(self.tiers)


@dataclass(frozen=True)
class ManifestEntry:
    """A source file selected for capture."""

    relative_path: str
    source_path: Path
    size: int = 0


@dataclass
class Manifest:
    """
    Ordered list of files selected for one capture.

    Computed once per capture and shared by dry-run reporting and the
    real write, so both agree on what would be captured.
    """

    source_root: Path
    entries: List[ManifestEntry] = field(default_factory=list)

    def add(self, entry: ManifestEntry):
        self.entries.append(entry)

    @property
    def total_bytes(self) -> int:
        return sum(entry.size for entry in self.entries)

    @property
    def relative_paths(self) -> List[str]:
        return [entry.relative_path for entry in self.entries]

    def __len__(self):
        return len(self.entries)

    def __iter__(self) -> Iterator[ManifestEntry]:
        return iter(self.entries)
