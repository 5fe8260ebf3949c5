"""
Exceptions raised by the chat models, the tool registry and the cache.

    ChatModelError
        ProtocolError            the provider response cannot be read
        ProviderError            transport or API error of the provider
        ObserverError            an observer failed to record
        GenerationCancelledError the caller cancelled the call
    CacheError
        CacheMissError           the cache has no answer for the query
    ToolError
        ToolArgumentsError       the arguments do not match the schema

Tool errors never leave a generation call: they become the content of
the tool result so that the model can react to them. A cache miss is
not a failure; any other cache error aborts the call.
"""


class ChatModelError(Exception):
    """Error of a generation call. The message is prefixed with the
    name of the chat model that failed."""

    def __init__(self, name: str, msg: str) -> None:
        super().__init__(f"{name}: {msg}")
        self.name = name


class ProtocolError(ChatModelError):
    pass


class ProviderError(ChatModelError):
    pass


class ObserverError(ChatModelError):
    pass


class GenerationCancelledError(ChatModelError):
    pass


class CacheError(Exception):
    pass


class CacheMissError(CacheError):
    """No cached answer. Carries the embedding of the query, so that
    the answer can be stored under it after generation."""

    def __init__(self, embedding: list[float]) -> None:
        super().__init__("cache miss")
        self.embedding = embedding


class ToolError(Exception):
    pass


class ToolArgumentsError(ToolError):
    pass
