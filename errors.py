class BackupError(Exception):
    """Base class for backup and restore failures."""


class SnapshotValidationError(BackupError, ValueError):
    """Snapshot document is unreadable or lacks mandatory data."""


class ObjectStoreError(BackupError):
    """Durable store operation failed."""


class AuthorizationError(ObjectStoreError):
    """Durable store rejected the caller by access policy."""


class BackupNotFoundError(ObjectStoreError):
    """Requested backup object does not exist."""


class FatalStoreError(BackupError):
    """Entity store failed while reconciling the exercise catalog."""
