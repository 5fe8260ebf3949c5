"""
Chat model backend delegating the provider calls to a LangChain chat
model. This is the backend of the Anthropic, Mistral, Gemini and Debug
sources; any LangChain chat model may also be wrapped directly.

Example:
    ```python
    from lmo.config import LanguageModelSettings
    from lmo.language_models.langchain import LangChainChatModel

    model = LangChainChatModel(
        LanguageModelSettings(model="Anthropic/claude-3-5-haiku-latest")
    )
    ```

The thread messages are converted to LangChain messages, and the
AIMessage (or the AIMessageChunk objects of a stream) returned by the
model are converted to the provider-neutral models of
lmo.language_models.wire.
"""

import json
from collections.abc import Iterator
from typing import Any

from langchain_core.language_models.chat_models import (
    BaseChatModel as LangChainBaseChatModel,
)
from langchain_core.messages import (
    AIMessage,
    AIMessageChunk,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_core.runnables import Runnable

from lmo.config.config import LanguageModelSettings

from ..base import BaseChatModel
from ..thread import (
    ImageContent,
    Message,
    Role,
    TextContent,
    ToolCallContent,
    ToolResponseContent,
)
from ..wire import (
    FINISH_REASON_TOOL_CALLS,
    ChatChunk,
    ChatRequest,
    ChatResponse,
    Choice,
    ChunkChoice,
    Delta,
    PromptTokensDetails,
    ResponseMessage,
    Usage,
    WireFunction,
    WireToolCall,
)
from .models import create_model_from_settings

# key of the tool call arguments that could not be decoded
RAW_ARGUMENTS_KEY = "__raw_arguments"

# request parameters passed to the model call, by model source. The
# other sources reject these parameters when configured.
_CALL_PARAMETERS: dict[str, frozenset[str]] = {
    "OpenAI": frozenset(
        {"response_format", "max_completion_tokens", "reasoning_effort"}
    ),
    "LocalAI": frozenset(
        {"response_format", "max_completion_tokens", "reasoning_effort"}
    ),
    "Mistral": frozenset({"response_format"}),
    "Debug": frozenset(
        {"response_format", "max_completion_tokens", "reasoning_effort"}
    ),
}


def _human_message(message: Message) -> HumanMessage:
    if message.is_text_only():
        return HumanMessage(content=message.text())

    parts: list[str | dict[str, Any]] = []
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
                    f"Invalid content in user message: {content.type}"
                )
    return HumanMessage(content=parts)


def _tool_call_args(arguments: str) -> dict[str, Any]:
    # arguments that are not a JSON object are passed back raw
    if not arguments.strip():
        return {}
    try:
        args = json.loads(arguments)
    except json.JSONDecodeError:
        return {RAW_ARGUMENTS_KEY: arguments}
    if not isinstance(args, dict):
        return {RAW_ARGUMENTS_KEY: arguments}
    return args


def _ai_message(message: Message) -> AIMessage:
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
                        "name": name,
                        "args": _tool_call_args(args),
                    }
                )
            case _:
                raise ValueError(
                    f"Invalid content in assistant message: {content.type}"
                )
    return AIMessage(content="\n".join(texts), tool_calls=tool_calls)


def to_langchain_messages(message: Message) -> list[BaseMessage]:
    """Convert a thread message to LangChain messages. A tool message
    gives one ToolMessage per tool result."""
    match message.role:
        case Role.SYSTEM:
            if not message.is_text_only():
                raise ValueError("System messages may only contain text")
            return [SystemMessage(content=message.text())]
        case Role.USER:
            return [_human_message(message)]
        case Role.ASSISTANT:
            return [_ai_message(message)]
        case Role.TOOL:
            messages: list[BaseMessage] = []
            for content in message.contents:
                match content:
                    case ToolResponseContent(
                        id=call_id, name=name, result=result
                    ):
                        messages.append(
                            ToolMessage(
                                content=result,
                                tool_call_id=call_id,
                                name=name,
                            )
                        )
                    case _:
                        raise ValueError(
                            "Invalid content in tool message: "
                            f"{content.type}"
                        )
            return messages


def _content_text(content: str | list[Any]) -> str:
    # content blocks of multimodal or reasoning models
    if isinstance(content, str):
        return content
    texts: list[str] = []
    for block in content:
        if isinstance(block, str):
            texts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            texts.append(str(block.get("text", "")))
    return "".join(texts)


def _usage(message: AIMessage) -> Usage | None:
    metadata = message.usage_metadata
    if not metadata:
        return None
    details = metadata.get("input_token_details") or {}
    return Usage(
        prompt_tokens=metadata.get("input_tokens", 0),
        completion_tokens=metadata.get("output_tokens", 0),
        total_tokens=metadata.get("total_tokens", 0),
        prompt_tokens_details=PromptTokensDetails(
            audio_tokens=details.get("audio"),
            cached_tokens=details.get("cache_read"),
        ),
    )


class LangChainChatModel(BaseChatModel):
    """Chat model calling a LangChain chat model.

    The response format, the max number of completion tokens and the
    reasoning effort are passed to the model call for the OpenAI,
    LocalAI and Debug sources; Mistral models accept the response
    format only.

    Raises:
        ValueError: if the settings configure a parameter that the
            model source does not support.
    """

    default_name = "langchain"

    def __init__(
        self,
        settings: LanguageModelSettings,
        *,
        model: LangChainBaseChatModel | None = None,
        **kwargs: Any,
    ):
        source = settings.get_model_source()
        supported = _CALL_PARAMETERS.get(source, frozenset())
        unsupported = [
            p
            for p in ("response_format", "max_completion_tokens",
                      "reasoning_effort")
            if getattr(settings, p) and p not in supported
        ]
        if unsupported:
            raise ValueError(
                f"{source} models do not support: {', '.join(unsupported)}"
            )
        super().__init__(settings, **kwargs)
        self._model = model

    @property
    def model(self) -> LangChainBaseChatModel:
        if self._model is None:
            self._model = create_model_from_settings(self.settings)
        return self._model

    def to_messages(self, request: ChatRequest) -> list[BaseMessage]:
        messages: list[BaseMessage] = []
        for message in request.messages:
            messages.extend(to_langchain_messages(message))
        return messages

    def call_kwargs(self, request: ChatRequest) -> dict[str, Any]:
        """The request parameters passed to the model call."""
        kwargs: dict[str, Any] = {"stop": request.stop}
        if request.response_format is not None:
            kwargs["response_format"] = {"type": request.response_format}
        if request.max_completion_tokens:
            kwargs["max_completion_tokens"] = request.max_completion_tokens
        if request.reasoning_effort is not None:
            kwargs["reasoning_effort"] = request.reasoning_effort
        return kwargs

    def bind(self, request: ChatRequest) -> Runnable[Any, Any]:
        """The model with the tools of the request bound to it. With
        tool choice 'none' the tools are not bound."""
        if not request.tools or request.tool_choice == "none":
            return self.model

        match request.tool_choice:
            case {"function": {"name": name}}:
                tool_choice: str | None = name
            case "required":
                tool_choice = "any"
            case str() as choice:
                tool_choice = choice
            case _:
                tool_choice = None
        return self.model.bind_tools(request.tools, tool_choice=tool_choice)

    def _create(self, request: ChatRequest) -> ChatResponse:
        response = self.bind(request).invoke(
            self.to_messages(request), **self.call_kwargs(request)
        )
        if not isinstance(response, AIMessage):
            raise ValueError(
                f"Unexpected response type: {type(response).__name__}"
            )

        tool_calls = [
            WireToolCall(
                index=i,
                id=call.get("id"),
                type="function",
                function=WireFunction(
                    name=call["name"], arguments=json.dumps(call["args"])
                ),
            )
            for i, call in enumerate(response.tool_calls)
        ]
        # calls with undecodable arguments keep the raw text, which
        # the dispatch answers with an error result
        for call in response.invalid_tool_calls:
            tool_calls.append(
                WireToolCall(
                    index=len(tool_calls),
                    id=call.get("id"),
                    type="function",
                    function=WireFunction(
                        name=call.get("name"),
                        arguments=call.get("args") or "",
                    ),
                )
            )
        finish_reason = (
            FINISH_REASON_TOOL_CALLS
            if tool_calls
            else response.response_metadata.get("finish_reason", "stop")
        )
        return ChatResponse(
            id=response.id,
            choices=[
                Choice(
                    finish_reason=finish_reason,
                    message=ResponseMessage(
                        role="assistant",
                        content=_content_text(response.content),
                        tool_calls=tool_calls or None,
                    ),
                )
            ],
            usage=_usage(response),
        )

    def _create_stream(self, request: ChatRequest) -> Iterator[ChatChunk]:
        stream = self.bind(request).stream(
            self.to_messages(request), **self.call_kwargs(request)
        )
        for chunk in stream:
            if not isinstance(chunk, AIMessageChunk):
                raise ValueError(
                    f"Unexpected chunk type: {type(chunk).__name__}"
                )
            tool_calls = [
                WireToolCall(
                    index=call.get("index"),
                    id=call.get("id"),
                    function=WireFunction(
                        name=call.get("name"), arguments=call.get("args")
                    ),
                )
                for call in chunk.tool_call_chunks
            ]
            yield ChatChunk(
                id=chunk.id,
                choices=[
                    ChunkChoice(
                        delta=Delta(
                            content=_content_text(chunk.content),
                            tool_calls=tool_calls or None,
                        )
                    )
                ],
            )
