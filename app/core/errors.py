"""Typed exceptions raised across the orchestration engine."""


class ChatEngineError(Exception):
    """Base class for engine errors."""


class ProviderError(ChatEngineError):
    """The model provider returned an error or an unusable response."""


class StructuredOutputError(ProviderError):
    """A structured call finished without a valid tool_use payload."""


class FallbackFailedError(ChatEngineError):
    """The degraded no-tool generation call failed. Not recoverable."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class StoreError(ChatEngineError):
    """The client-side document store could not be read or written."""


class ChatAPIError(ChatEngineError):
    """The chat server answered a client request with an error status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
