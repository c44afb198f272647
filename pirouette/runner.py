"""
Runner - one capture-then-prune pass.

Workflow:
1. Pre-flight checks (retention policy, source, target)
2. List the existing snapshots in the target
3. Capture a new snapshot
4. Select the snapshots to retain, including the new one
5. Delete the rest
6. Report a consolidated summary
"""

import logging
from typing import Any, Dict, List, Optional

from pirouette.backup.executor import SnapshotEngine
from pirouette.backup.retention import RetentionEngine
from pirouette.backup.sources import LocalSource
from pirouette.backup.storage import create_storage
from pirouette.config import PirouetteConfig
from pirouette.context import RunContext
from pirouette.errors import CaptureError, EmptyPolicy, FatalError
from pirouette.models import Snapshot


EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_CAPTURE_FAILED = 2


class Runner:
    """
    Drives the snapshot and retention engines for one invocation.
    """

    def __init__(self, config: PirouetteConfig, context: Optional[RunContext] = None):
        """
        Initialize runner.

        Args:
            config: Validated configuration
            context: Run context (default: built from config.dry_run)
        """
        self.config = config
        self.context = context or RunContext(dry_run=config.dry_run)
        self.storage = create_storage(config.output_format, str(config.target), self.context)
        self.snapshot: Optional[Snapshot] = None

    def run(self) -> Dict[str, Any]:
        """
        Execute capture then retention.

        Fatal errors stop the run before anything is mutated. Capture and
        deletion failures are recorded and reported in the summary.

        Returns:
            Summary dict:
            {
                'status': 'success' | 'partial' | 'failed',
                'dry_run': bool,
                'snapshot': Optional[str],
                'deleted': List[str],
                'retained': List[str],
                'failures': List[Dict[str, str]],
                'skipped': List[str],
                'anomalies': List[str],
                'error': Optional[str],
                'logs': List[str]
            }
        """
        summary = {
            'status': 'success',
            'dry_run': self.context.dry_run,
            'snapshot': None,
            'deleted': [],
            'retained': [],
            'failures': self.context.failures,
            'skipped': self.context.skipped,
            'anomalies': self.context.anomalies,
            'error': None,
            'logs': self.context.logs
        }

        self.context.log(f"Starting run: {self.config.source} -> {self.config.target}")

        try:
            self._preflight()
            history = self.storage.list()
            self.context.log(f"Target contains {len(history)} existing snapshots")

            self.snapshot = self._capture()
            if self.snapshot is not None:
                summary['snapshot'] = self.snapshot.path.name
                history.append(self.snapshot)

            retention = RetentionEngine(self.storage, self.context)
            result = retention.enforce(history, self.config.retention)
            summary['deleted'] = result['deleted']
            summary['retained'] = result['retained']

        except FatalError as e:
            summary['status'] = 'failed'
            summary['error'] = f"{type(e).__name__}: {e}"
            self.context.log(f"Run aborted: {summary['error']}", logging.ERROR)
            return summary

        if self.context.has_failures:
            summary['status'] = 'partial'

        self.context.log(
            f"Run complete. Status: {summary['status']}, "
            f"snapshot: {summary['snapshot'] or 'none'}, "
            f"deleted: {len(summary['deleted'])}, "
            f"retained: {len(summary['retained'])}, "
            f"failures: {len(self.context.failures)}"
        )
        return summary

    def _preflight(self):
        """
        Raises:
            EmptyPolicy: If the retention policy has no tiers
            SourceNotFound: If the source does not exist
            TargetUnavailable: If the target cannot be created or accessed
        """
        if len(self.config.retention) == 0:
            raise EmptyPolicy("No retention period was specified")
        LocalSource(str(self.config.source), context=self.context).check()
        self.storage.ensure_available()

    def _capture(self) -> Optional[Snapshot]:
        """Capture a snapshot. A capture-local failure is recorded and yields None."""
        engine = SnapshotEngine(self.storage, self.context)
        try:
            return engine.capture(str(self.config.source), self.config.include, self.config.exclude)
        except CaptureError as e:
            self.context.record_failure('capture', str(self.config.source), e)
            return None


def exit_code(summary: Dict[str, Any]) -> int:
    """
    Process exit status for a run summary.

    Returns:
        0 on success (deletion failures included), 1 on a fatal error,
        2 when the snapshot could not be written
    """
    if summary['status'] == 'failed':
        return EXIT_FATAL
    failures: List[Dict[str, str]] = summary['failures']
    if any(failure['stage'] == 'capture' for failure in failures):
        return EXIT_CAPTURE_FAILED
    return EXIT_SUCCESS


def run(config: PirouetteConfig, context: Optional[RunContext] = None) -> Dict[str, Any]:
    """
    Execute one capture-then-prune pass.

    Args:
        config: Validated configuration
        context: Run context

    Returns:
        Summary dict from Runner.run()
    """
    return Runner(config, context).run()
