"""Exception hierarchy shared by the store, the sync engine and the remote client."""


class JobSyncError(Exception):
    """Base exception for jobsync."""


class RemoteError(JobSyncError):
    """The remote sync endpoint could not complete a request."""


class TransportError(RemoteError):
    """Network or HTTP failure talking to the remote. Safe to retry."""


class AuthenticationError(RemoteError):
    """The remote rejected the session (expired or invalid token)."""


class MergeError(JobSyncError):
    """Pulled changes could not be applied to the workspace slice."""


class PersistenceError(JobSyncError):
    """Persisted state could not be read, migrated or written."""
