"""
Exception hierarchy for Pirouette.

Fatal errors abort a run before anything is mutated. Capture errors abort
only the snapshot being written; retention still runs afterwards.
"""


class PirouetteError(Exception):
    """Base class for all Pirouette errors."""


# --- Fatal / pre-flight ---


class FatalError(PirouetteError):
    """Aborts the whole run before any destructive action."""


class ConfigError(FatalError):
    """Raised when the configuration file is missing or invalid."""


class SourceNotFound(FatalError):
    """Raised when the source path does not exist."""


class TargetUnavailable(FatalError):
    """Raised when the target root cannot be created or accessed."""


class DuplicateSnapshot(FatalError):
    """Raised when a snapshot with the same timestamp already exists."""


class EmptyPolicy(FatalError):
    """Raised when a retention policy has no tiers."""


# --- Capture-local ---


class CaptureError(PirouetteError):
    """Raised when writing a snapshot fails. The partial artifact is removed."""
