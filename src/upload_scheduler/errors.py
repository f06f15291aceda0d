class UploadError(Exception):
    """
    Base class for failures raised by upload collaborators.
    """


class DestinationError(UploadError):
    pass


class TransferError(UploadError):
    pass


class UploadCanceled(UploadError):
    """
    Raised by a transfer that observed its cancellation token.
    """

    def __init__(self, message: str = "Upload canceled"):
        super().__init__(message)


class FinalizeError(UploadError):
    pass


class AcknowledgeError(UploadError):
    pass


class OperationTimeout(UploadError):
    """
    Raised when a collaborator call exceeds the configured operation timeout.
    """

    def __init__(self, operation: str, timeout: float):
        super().__init__(f"{operation} timed out after {timeout:g}s")
        self.operation = operation
        self.timeout = timeout
