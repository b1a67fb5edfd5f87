"""Error handling: exception taxonomy and retry with backoff."""

from gentrack.errors.exceptions import (
    AlreadyWatching,
    BatchStopped,
    Cancelled,
    ConfigurationError,
    FolderNotFound,
    GenerationFailed,
    GenTrackError,
    PollTimeout,
    RateLimitExceeded,
    RemoteApiError,
    TransientNetworkError,
    WatchNotFound,
    wrap_error,
)

__all__ = [
    "GenTrackError",
    "Cancelled",
    "PollTimeout",
    "GenerationFailed",
    "TransientNetworkError",
    "ConfigurationError",
    "RemoteApiError",
    "RateLimitExceeded",
    "FolderNotFound",
    "WatchNotFound",
    "AlreadyWatching",
    "BatchStopped",
    "wrap_error",
]
