"""
Provider-neutral models of the request sent to a chat provider and
of the responses and stream chunks it returns.

The shapes follow the OpenAI chat completions API, which is also the
shape exposed by most OpenAI-compatible servers. Backends convert
their native objects into these models, so that the translation of
responses into thread messages is written once, in
lmo.language_models.base.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .thread import Message

FINISH_REASON_TOOL_CALLS = "tool_calls"


def _as_dict(obj: Any) -> Any:
    # SDK objects are pydantic models of their own
    if hasattr(obj, "model_dump") and callable(obj.model_dump):
        return obj.model_dump()
    return obj


class ChatRequest(BaseModel):
    """A chat request. Optional parameters left to None are omitted
    from the payload sent to the provider."""

    model: str
    messages: list[Message]
    n: int = 1
    temperature: float | None = None
    max_tokens: int | None = None
    max_completion_tokens: int | None = None
    reasoning_effort: str | None = None
    stop: list[str] | None = None
    response_format: str | None = None
    tools: list[dict[str, Any]] | None = None
    tool_choice: str | dict[str, Any] | None = None
    stream: bool = False

    def parameters(self) -> dict[str, Any]:
        """The request parameters other than model and messages, with
        unset values omitted."""
        return self.model_dump(
            exclude={'model', 'messages'}, exclude_none=True
        )


class WireFunction(BaseModel):
    name: str | None = None
    arguments: str | None = None


class WireToolCall(BaseModel):
    index: int | None = None
    id: str | None = None
    type: str | None = None
    function: WireFunction = Field(default_factory=WireFunction)


class ResponseMessage(BaseModel):
    role: str | None = None
    content: str | None = None
    tool_calls: list[WireToolCall] | None = None


class Choice(BaseModel):
    index: int = 0
    finish_reason: str | None = None
    message: ResponseMessage = Field(default_factory=ResponseMessage)

    def has_tool_calls(self) -> bool:
        return self.finish_reason == FINISH_REASON_TOOL_CALLS or bool(
            self.message.tool_calls
        )


class PromptTokensDetails(BaseModel):
    audio_tokens: int | None = None
    cached_tokens: int | None = None


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    prompt_tokens_details: PromptTokensDetails | None = None


class ChatResponse(BaseModel):
    id: str | None = None
    model: str | None = None
    choices: list[Choice] = Field(default_factory=list)
    usage: Usage | None = None

    @classmethod
    def from_provider(cls, response: Any) -> 'ChatResponse':
        return cls.model_validate(_as_dict(response))


class Delta(BaseModel):
    role: str | None = None
    content: str | None = None
    tool_calls: list[WireToolCall] | None = None


class ChunkChoice(BaseModel):
    index: int = 0
    finish_reason: str | None = None
    delta: Delta = Field(default_factory=Delta)

    def has_tool_calls(self) -> bool:
        return self.finish_reason == FINISH_REASON_TOOL_CALLS or bool(
            self.delta.tool_calls
        )


class ChatChunk(BaseModel):
    id: str | None = None
    choices: list[ChunkChoice] = Field(default_factory=list)

    @classmethod
    def from_provider(cls, chunk: Any) -> 'ChatChunk':
        return cls.model_validate(_as_dict(chunk))


class TokensUsage(BaseModel):
    """Token counters of a generation call."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    audio_tokens: int = 0
    cached_tokens: int = 0

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_usage(cls, usage: Usage | None) -> 'TokensUsage':
        if usage is None:
            return cls()
        details = usage.prompt_tokens_details or PromptTokensDetails()
        return cls(
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            audio_tokens=details.audio_tokens or 0,
            cached_tokens=details.cached_tokens or 0,
        )
