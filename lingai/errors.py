"""Domain errors raised by services; routes translate them to HTTP codes."""


class InvalidArgument(ValueError):
    """Malformed input or a call outside a function's domain (HTTP 400)."""


class NotFound(LookupError):
    """Entity absent or not owned by the caller (HTTP 404)."""


class UpstreamFailure(RuntimeError):
    """An external collaborator failed (HTTP 500)."""


class AIProviderError(UpstreamFailure):
    pass


class BlobStoreError(UpstreamFailure):
    pass


class LessonGenerationError(UpstreamFailure):
    pass
