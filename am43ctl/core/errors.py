"""Domain-specific errors for am43ctl."""


class Am43Error(Exception):
    """Base error for am43ctl."""


class ProfileValidationError(Am43Error):
    """Raised when a profile file does not conform to schema or semantics."""


class ProfileLoadError(Am43Error):
    """Raised when loading profile sources fails."""


class ProfileResolutionError(Am43Error):
    """Raised when a requested profile id is not loaded."""


class DeviceNotReadyError(Am43Error):
    """Raised when the blind link could not be brought up."""


class FrameDecodeError(Am43Error):
    """Raised when a notification frame is too short to interpret."""


class TransportError(Am43Error):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on BLE connect or discovery failures."""


class TransportSendError(TransportError):
    """Raised when a write or subscribe fails."""


class TransportTimeoutError(TransportError):
    """Raised when a BLE operation times out."""
