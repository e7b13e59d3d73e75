class GsuCloudError(Exception):
    """Base class for errors raised by the capture and state layers."""


class ValidationError(GsuCloudError):
    """Unsafe capture name (path traversal, separators, empty)."""


class NotFoundError(GsuCloudError):
    """Requested capture file does not exist."""


class DecodeError(GsuCloudError):
    """Capture payload is not a readable 2-D numeric array."""


class StorageIOError(GsuCloudError):
    """Disk read/write failure inside the capture storage directory."""
