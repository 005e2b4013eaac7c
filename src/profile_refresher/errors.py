"""Error taxonomy for stable module boundaries."""


class ProfileRefresherError(Exception):
    """Base exception for profile-refresher."""


class ConfigError(ProfileRefresherError):
    """Raised when configuration is invalid or missing."""


class StoreError(ProfileRefresherError):
    """Raised for key-value persistence failures."""


class SnapshotError(ProfileRefresherError):
    """Raised when a contact snapshot cannot be read or parsed."""


class SelectionError(ProfileRefresherError):
    """Raised when candidate selection meets a contact it cannot classify."""


class FetchError(ProfileRefresherError):
    """Raised by profile fetchers to report a failed fetch."""


class SchedulerError(ProfileRefresherError):
    """Raised for refresh loop and executor coordination failures."""


class DiagnosticsError(ProfileRefresherError):
    """Raised for diagnostics event failures."""
