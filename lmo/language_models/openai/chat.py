"""
Chat model backend for the OpenAI chat completions API, using the
official `openai` SDK. The same backend serves OpenAI-compatible
servers (LocalAI, vLLM, llama.cpp server, ...) through the base_url
of the settings.

The SDK clients are memoized in `openai_clients`, keyed by endpoint,
key, timeout and retries, so that chat models with the same
connection settings share one HTTP connection pool. A client may
also be given explicitly, which is how the tests inject a fake one.

Example:
    ```python
    from lmo.config import LanguageModelSettings
    from lmo.language_models.openai import OpenAIChatModel

    model = OpenAIChatModel(
        LanguageModelSettings(model="OpenAI/gpt-4o-mini", temperature=0.2)
    )
    local = LocalAIChatModel(
        LanguageModelSettings(
            model="LocalAI/llama-3.2-1b-instruct",
            base_url="http://localhost:8080/v1",
        )
    )
    ```
"""

from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel, ConfigDict, SecretStr

from lmo.config.config import LanguageModelSettings

from ..base import BaseChatModel
from ..lazy_dict import LazyLoadingDict
from ..thread import (
    ImageContent,
    Message,
    Role,
    TextContent,
    ToolCallContent,
    ToolResponseContent,
)
from ..wire import ChatChunk, ChatRequest, ChatResponse

# placeholder key for local servers that do not check it
NO_API_KEY = "no-key"


class ClientSettings(BaseModel):
    """Connection settings of an SDK client."""

    base_url: str | None = None
    api_key: SecretStr | None = None
    timeout: float | None = None
    max_retries: int = 2

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_settings(
        cls, settings: LanguageModelSettings
    ) -> 'ClientSettings':
        return cls(
            base_url=settings.base_url,
            api_key=settings.api_key,
            timeout=settings.timeout,
            max_retries=settings.max_retries,
        )


def _create_client(spec: ClientSettings) -> Any:
    try:
        from openai import OpenAI
    except ImportError as e:
        raise ImportError(
            "OpenAI models require the 'openai' package. "
            "Install it with: pip install openai"
        ) from e

    api_key: str | None = (
        spec.api_key.get_secret_value() if spec.api_key else None
    )
    if api_key is None and spec.base_url is not None:
        api_key = NO_API_KEY

    kwargs: dict[str, Any] = {"max_retries": spec.max_retries}
    if api_key is not None:
        kwargs["api_key"] = api_key
    if spec.base_url is not None:
        kwargs["base_url"] = spec.base_url
    if spec.timeout is not None:
        kwargs["timeout"] = spec.timeout
    return OpenAI(**kwargs)


openai_clients: LazyLoadingDict[ClientSettings, Any] = LazyLoadingDict(
    _create_client
)


def _user_content(message: Message) -> str | list[dict[str, Any]]:
    if message.is_text_only():
        return message.text()

    parts: list[dict[str, Any]] = []
    for content in message.contents:
        match content:
            case TextContent(data=data):
                parts.append({"type": "text", "text": data})
            case ImageContent(url=url, detail=detail):
                parts.append(
                    {
                        "type": "image_url",
                        "image_url": {"url": url, "detail": detail},
                    }
                )
            case _:
                raise ValueError(
                    f"Invalid content in {message.role} message: "
                    f"{content.type}"
                )
    return parts


def _assistant_message(message: Message) -> dict[str, Any]:
    texts: list[str] = []
    tool_calls: list[dict[str, Any]] = []
    for content in message.contents:
        match content:
            case TextContent(data=data):
                texts.append(data)
            case ToolCallContent(id=call_id, name=name, arguments=args):
                tool_calls.append(
                    {
                        "id": call_id,
                        "type": "function",
                        "function": {"name": name, "arguments": args},
                    }
                )
            case _:
                raise ValueError(
                    f"Invalid content in assistant message: {content.type}"
                )

    msg: dict[str, Any] = {
        "role": "assistant",
        "content": "\n".join(texts) if texts else None,
    }
    if tool_calls:
        msg["tool_calls"] = tool_calls
    return msg


def to_openai_messages(message: Message) -> list[dict[str, Any]]:
    """Convert a thread message to chat completions messages. A tool
    message gives one message per tool result."""
    match message.role:
        case Role.SYSTEM:
            if not message.is_text_only():
                raise ValueError("System messages may only contain text")
            return [{"role": "system", "content": message.text()}]
        case Role.USER:
            return [{"role": "user", "content": _user_content(message)}]
        case Role.ASSISTANT:
            return [_assistant_message(message)]
        case Role.TOOL:
            messages: list[dict[str, Any]] = []
            for content in message.contents:
                match content:
                    case ToolResponseContent(id=call_id, result=result):
                        messages.append(
                            {
                                "role": "tool",
                                "tool_call_id": call_id,
                                "content": result,
                            }
                        )
                    case _:
                        raise ValueError(
                            "Invalid content in tool message: "
                            f"{content.type}"
                        )
            return messages


class OpenAIChatModel(BaseChatModel):
    """Chat model calling the chat completions endpoint."""

    default_name = "openai"

    def __init__(
        self,
        settings: LanguageModelSettings,
        *,
        client: Any | None = None,
        **kwargs: Any,
    ):
        super().__init__(settings, **kwargs)
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = openai_clients[
                ClientSettings.from_settings(self.settings)
            ]
        return self._client

    def to_payload(self, request: ChatRequest) -> dict[str, Any]:
        """The keyword arguments of the SDK call for a request."""
        messages: list[dict[str, Any]] = []
        for message in request.messages:
            messages.extend(to_openai_messages(message))

        payload: dict[str, Any] = {
            "model": request.model,
            "messages": messages,
        }
        payload.update(request.parameters())
        if request.response_format is not None:
            payload["response_format"] = {"type": request.response_format}
        if not request.stream:
            payload.pop("stream", None)
        payload.update(self.settings.provider_params)
        return payload

    def _create(self, request: ChatRequest) -> ChatResponse:
        response = self.client.chat.completions.create(
            **self.to_payload(request)
        )
        return ChatResponse.from_provider(response)

    def _create_stream(self, request: ChatRequest) -> Iterator[ChatChunk]:
        stream = self.client.chat.completions.create(
            **self.to_payload(request)
        )
        try:
            for chunk in stream:
                yield ChatChunk.from_provider(chunk)
        finally:
            close = getattr(stream, "close", None)
            if callable(close):
                close()


class LocalAIChatModel(OpenAIChatModel):
    """Chat model for a LocalAI server, or any OpenAI-compatible
    endpoint. The settings must give the base_url."""

    default_name = "localai"

    def __init__(self, settings: LanguageModelSettings, **kwargs: Any):
        if not settings.base_url:
            raise ValueError(f"{self.default_name} requires a base_url")
        super().__init__(settings, **kwargs)
