"""
Retention policy enforcement for snapshots.

Classic tiered (grandfather-father-son) rotation: every tier keeps the
most recent snapshot of each of its `keep` most recent calendar buckets,
and a snapshot survives if any tier keeps it.

Buckets are computed in UTC so that boundaries do not move with the
local time zone or daylight saving changes.
"""

from datetime import timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from pirouette.context import RunContext
from pirouette.errors import EmptyPolicy
from pirouette.models import RetentionPolicy, RetentionTier, Snapshot
from .storage import StorageBackend, StorageError


def bucket_key(snapshot: Snapshot, granularity: str) -> tuple:
    """
    Calendar bucket a snapshot falls into for a granularity.

    Args:
        snapshot: Snapshot to classify
        granularity: 'hour', 'day', 'week', 'month' or 'year'

    Returns:
        Hashable bucket key. Weeks are ISO weeks (Monday start).
    """
    moment = snapshot.timestamp
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)

    if granularity == 'hour':
        return (moment.year, moment.month, moment.day, moment.hour)
    if granularity == 'day':
        return (moment.year, moment.month, moment.day)
    if granularity == 'week':
        iso = moment.isocalendar()
        return (iso[0], iso[1])
    if granularity == 'month':
        return (moment.year, moment.month)
    if granularity == 'year':
        return (moment.year,)
    raise ValueError(f"Invalid granularity: {granularity}")


def select_for_tier(ordered: Sequence[Snapshot], tier: RetentionTier) -> List[Snapshot]:
    """
    Pick the newest snapshot of each of the tier's most recent buckets.

    Args:
        ordered: Snapshots sorted newest first
        tier: Retention tier

    Returns:
        Selected snapshots, newest first
    """
    selected = []
    seen = set()
    for snapshot in ordered:
        if len(seen) >= tier.keep:
            break
        key = bucket_key(snapshot, tier.granularity)
        if key in seen:
            continue
        seen.add(key)
        selected.append(snapshot)
    return selected


def select_retained(history: Iterable[Snapshot], policy: RetentionPolicy) -> Set[str]:
    """
    Compute the names of the snapshots to keep.

    Args:
        history: Every identified snapshot in the target
        policy: Retention policy

    Returns:
        Set of snapshot names (timestamps) to retain

    Raises:
        EmptyPolicy: If the policy has no tiers
    """
    if policy is None or len(policy) == 0:
        raise EmptyPolicy("No retention period was specified")

    ordered = sorted(history, key=lambda s: s.timestamp, reverse=True)
    retained = set()
    for tier in policy:
        retained.update(snapshot.name for snapshot in select_for_tier(ordered, tier))
    return retained


class RetentionEngine:
    """
    Applies a retention policy to the snapshots of one target.
    """

    def __init__(self, storage: StorageBackend, context: Optional[RunContext] = None):
        """
        Initialize retention engine.

        Args:
            storage: Backend used for deletions
            context: Run context (default: the storage backend's)
        """
        self.storage = storage
        self.context = context or storage.context

    def select_retained(self, history: Iterable[Snapshot], policy: RetentionPolicy) -> Set[str]:
        """Compute the retain set and log what each tier keeps."""
        if policy is None or len(policy) == 0:
            raise EmptyPolicy("No retention period was specified")

        ordered = sorted(history, key=lambda s: s.timestamp, reverse=True)
        retained = set()
        for tier in policy:
            kept = select_for_tier(ordered, tier)
            self.context.log(
                f"{tier.granularity} tier (keep {tier.keep}): "
                f"{', '.join(s.name for s in kept) or 'nothing'}"
            )
            retained.update(s.name for s in kept)
        return retained

    def prune(self, history: Iterable[Snapshot], retain_set: Set[str]) -> Dict[str, Any]:
        """
        Delete every snapshot not in the retain set, oldest first.

        A failed deletion is recorded and does not stop the others.

        Args:
            history: Every identified snapshot in the target
            retain_set: Names to keep

        Returns:
            Dict with summary of cleanup operations:
            {
                'deleted': List[str],
                'retained': List[str],
                'failed': List[str]
            }
        """
        ordered = sorted(history, key=lambda s: s.timestamp)
        result = {
            'deleted': [],
            'retained': [],
            'failed': []
        }

        expired = [s for s in ordered if s.name not in retain_set]
        result['retained'] = [s.name for s in ordered if s.name in retain_set]
        self.context.log(
            f"Currently {len(ordered)} snapshots, keeping {len(result['retained'])}, "
            f"deleting {len(expired)}"
        )

        for snapshot in expired:
            try:
                self.storage.delete(snapshot)
                result['deleted'].append(snapshot.name)
            except StorageError as e:
                self.context.record_failure('retention', str(snapshot), e)
                result['failed'].append(snapshot.name)

        return result

    def enforce(self, history: Iterable[Snapshot], policy: RetentionPolicy) -> Dict[str, Any]:
        """Select and prune in one call."""
        history = list(history)
        retain_set = self.select_retained(history, policy)
        return self.prune(history, retain_set)
