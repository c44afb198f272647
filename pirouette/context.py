"""
Per-run context threaded through the snapshot and retention engines.

Carries the logger and dry-run flag, and collects the non-fatal events
of a run (anomalies, skipped paths, local failures) so they can be
reported once at the end.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class RunContext:
    """
    Explicit state for one capture-then-prune pass.
    """

    def __init__(self, dry_run: bool = False, logger: Optional[logging.Logger] = None):
        """
        Initialize run context.

        Args:
            dry_run: If True, no mutating filesystem operation is performed
            logger: Logger to emit to (default: the 'pirouette' logger)
        """
        self.dry_run = dry_run
        self.logger = logger or logging.getLogger('pirouette')
        self.logs: List[str] = []
        self.anomalies: List[str] = []
        self.skipped: List[str] = []
        self.failures: List[Dict[str, str]] = []

    def log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp and forward it to the logger.

        Args:
            message: Log message
            level: logging level
        """
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        prefix = '[DRY RUN] ' if self.dry_run else ''
        self.logs.append(f"[{timestamp}] {prefix}{message}")
        self.logger.log(level, '%s%s', prefix, message)

    def record_anomaly(self, name: str, reason: str):
        """Record a target entry that cannot be positively identified."""
        self.anomalies.append(name)
        self.log(f"Ignoring {name!r} in target: {reason}", logging.WARNING)

    def record_skipped(self, path: str, reason: str):
        """Record a source path left out of the capture."""
        self.skipped.append(path)
        self.log(f"Skipping {path}: {reason}", logging.WARNING)

    def record_failure(self, stage: str, subject: str, error: Any):
        """
        Record a non-fatal failure.

        Args:
            stage: 'capture' or 'retention'
            subject: What failed (snapshot name, path)
            error: Exception or message
        """
        self.failures.append({'stage': stage, 'subject': subject, 'error': str(error)})
        self.log(f"{stage.capitalize()} failed for {subject}: {error}", logging.ERROR)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)
