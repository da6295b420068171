"""Exception hierarchy for the stream harness."""


class StreamHarnessError(Exception):
    """Base exception for stream harness operations."""
    pass


class ProvisioningError(StreamHarnessError):
    """Stream could not be made ready for use."""
    pass


class ResourceConflict(ProvisioningError):
    """Stream exists in a terminal state that cannot be used or recreated."""
    pass


class ProvisioningTimeout(ProvisioningError):
    """Stream never became ACTIVE within the creation timeout."""
    pass


class StreamQueryError(ProvisioningError):
    """Non-transient failure while describing or creating the stream."""
    pass


class TransientQueryFault(StreamHarnessError):
    """Stream not visible yet while it is being created."""
    pass


class EncodingFault(StreamHarnessError):
    """Payload could not be encoded for publishing."""
    pass


class ShutdownFault(StreamHarnessError):
    """Failure in a best-effort shutdown step."""
    pass


class FlushFault(ShutdownFault):
    """Producer failed while draining outstanding records."""
    pass


class TeardownFault(ShutdownFault):
    """Stream deletion failed."""
    pass


class UnhandledBackgroundFault(StreamHarnessError):
    """Exception that escaped a background task or thread."""

    def __init__(self, origin: str, error: BaseException):
        super().__init__(f"Uncaught exception in {origin}: {error!r}")
        self.origin = origin
        self.error = error
