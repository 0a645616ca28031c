class PipelineError(Exception):
    """Base class for errors raised by the encode pipeline."""


class ConfigError(PipelineError):
    pass


class StoreError(PipelineError):
    """Job row creation or lookup failed."""


class StageError(PipelineError):
    """Uploaded bytes could not be written to the scratch area."""


class UploadTooLargeError(StageError):
    def __init__(self, limit: int):
        super().__init__(f"Upload exceeds the {limit} byte limit")
        self.limit = limit


class EncodeError(PipelineError):
    """External transcoder failed or produced no usable output."""

    def __init__(self, message: str, diagnostics: str = ""):
        super().__init__(message)
        self.diagnostics = diagnostics


class QueueFullError(PipelineError):
    """The encode worker pool refused new work."""


class EmptyUploadError(StageError):
    def __init__(self):
        super().__init__("uploaded file is empty")
