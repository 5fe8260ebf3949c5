"""
Abstract base class for chat model backends.

`BaseChatModel` implements the generation protocol shared by all
backends: it builds the request from the thread, looks up the
semantic cache, calls the provider (with or without streaming),
translates the response into thread messages, dispatches the tool
calls, records the call with the observer in the context, and stores
plain-text answers in the cache. Backends only implement the two
provider calls, `_create` and `_create_stream`, converting their
native objects to the models of lmo.language_models.wire.

The messages produced by a call are appended to the thread in one
batch at the end of the translation. A call that fails before that
point leaves the thread as it was; messages appended by an earlier
step (e.g. a cached answer) are not rolled back. The observation
record of a failed call is ended with no output.

Example:
    ```python
    from lmo.config import LanguageModelSettings
    from lmo.language_models import create_chat_model
    from lmo.language_models.thread import Thread, user_message

    model = create_chat_model(
        LanguageModelSettings(model="OpenAI/gpt-4o-mini", tool_choice="auto"),
        tools=[get_weather],
    )
    thread = Thread().add_message(user_message("Weather in Rome?"))
    model.generate(thread)
    ```

Streaming: when a stream callback is configured (or `stream` is
called), each text delta is passed to the callback as soon as it is
received, and the callback receives EOS when the stream ends.
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator
from typing import Any

from pydantic import BaseModel

from lmo.config.config import LanguageModelSettings
from lmo.utils import logger as default_logger
from lmo.utils.logging import LoggerBase

from .cache import BaseCache
from .errors import (
    CacheMissError,
    ChatModelError,
    GenerationCancelledError,
    ObserverError,
    ProtocolError,
    ProviderError,
)
from .observer import (
    Generation,
    start_observe_generation,
    stop_observe_generation,
)
from .thread import (
    Message,
    Role,
    Thread,
    ToolCallContent,
    assistant_message,
    tool_call_message,
)
from .tools import Tool, ToolRegistry
from .wire import ChatChunk, ChatRequest, ChatResponse, TokensUsage, WireToolCall

# end-of-stream marker sent to the stream callback
EOS = "\x00"

StreamCallback = Callable[[str], None]
UsageCallback = Callable[[dict[str, Any]], None]


class _PendingToolCall(BaseModel):
    """A tool call being assembled from stream deltas."""

    id: str
    name: str = ""
    arguments: str = ""


class BaseChatModel(ABC):
    """Abstract base class for chat models."""

    default_name: str = "chat"

    def __init__(
        self,
        settings: LanguageModelSettings,
        *,
        tools: ToolRegistry | Iterable[Tool] | None = None,
        cache: BaseCache | None = None,
        stream_callback: StreamCallback | None = None,
        usage_callback: UsageCallback | None = None,
        name: str | None = None,
        logger: LoggerBase = default_logger,
    ):
        self.settings = settings
        self.logger = logger
        if isinstance(tools, ToolRegistry):
            self.tools = tools
        else:
            self.tools = ToolRegistry(tools or (), logger=logger)
        self.cache = cache
        self.stream_callback = stream_callback
        self.usage_callback = usage_callback
        self.name = name or self.default_name

    # Provider interface -------------------------------------------
    @abstractmethod
    def _create(self, request: ChatRequest) -> ChatResponse:
        """Send a request and return the complete response."""
        pass

    @abstractmethod
    def _create_stream(self, request: ChatRequest) -> Iterator[ChatChunk]:
        """Send a streaming request and yield the response chunks."""
        pass

    # Public interface ---------------------------------------------
    def generate(
        self, thread: Thread, *, cancel: threading.Event | None = None
    ) -> None:
        """
        Get the next messages from the model and append them to the
        thread: an assistant message, or the tool-call record followed
        by the results of the calls.

        Args:
            thread: the conversation.
            cancel: an event that, when set, aborts the call without
                appending any message.

        Raises:
            ChatModelError (and subclasses) on failure.
        """
        self._run(thread, self.stream_callback, cancel)

    def generate_with_usage(
        self, thread: Thread, *, cancel: threading.Event | None = None
    ) -> TokensUsage:
        """
        As generate, returning the token usage reported by the
        provider. The usage is all zeros when the call is streamed,
        since it is not available from a stream, and when the answer
        comes from the cache.
        """
        return self._run(thread, self.stream_callback, cancel)

    def stream(
        self,
        thread: Thread,
        callback: StreamCallback,
        *,
        cancel: threading.Event | None = None,
    ) -> None:
        """As generate, streaming the text deltas to the callback."""
        self._run(thread, callback, cancel)

    async def agenerate(self, thread: Thread) -> TokensUsage:
        """
        Asynchronous generation, delegated to a worker thread. If the
        awaiting task is cancelled, the call is aborted at the next
        chunk or before the tool dispatch, without appending messages.
        """
        cancel = threading.Event()
        try:
            return await asyncio.to_thread(
                self.generate_with_usage, thread, cancel=cancel
            )
        except asyncio.CancelledError:
            cancel.set()
            raise

    def build_request(
        self, thread: Thread, *, stream: bool = False
    ) -> ChatRequest:
        """Translate the thread into a request. Empty messages are
        skipped; unset or zero parameters are left out."""
        s = self.settings
        request = ChatRequest(
            model=s.get_model_name(),
            messages=[m for m in thread if not m.is_empty()],
            temperature=s.temperature or None,
            max_tokens=s.max_tokens or None,
            max_completion_tokens=s.max_completion_tokens or None,
            reasoning_effort=s.reasoning_effort,
            stop=list(s.stop) or None,
            response_format=s.response_format,
            stream=stream,
        )
        if len(self.tools) > 0:
            request.tools = self.tools.definitions()
            request.tool_choice = self._tool_choice()
        return request

    def _tool_choice(self) -> str | dict[str, Any]:
        choice = self.settings.tool_choice
        if choice is None:
            return "none"
        if choice in ("auto", "none", "required"):
            return choice
        return {"type": "function", "function": {"name": choice}}

    # Generation protocol ------------------------------------------
    def _run(
        self,
        thread: Thread,
        callback: StreamCallback | None,
        cancel: threading.Event | None,
    ) -> TokensUsage:
        cache = self.cache
        cache_miss: CacheMissError | None = None
        if cache is not None:
            try:
                self._get_cache(cache, thread)
                return TokensUsage()
            except CacheMissError as e:
                cache_miss = e

        request = self.build_request(thread, stream=callback is not None)
        self._check_cancel(cancel)

        generation = self._start_observe(thread)
        n_before = len(thread)

        try:
            if callback is not None:
                self._stream(thread, request, callback, cancel)
                usage = TokensUsage()
            else:
                usage = self._generate(thread, request, cancel)
        except Exception:
            # a failed call appends nothing: the record ends without output
            self._stop_failed_observe(generation)
            raise

        self._stop_observe(generation, list(thread.messages[n_before:]))

        if cache is not None and cache_miss is not None:
            self._set_cache(cache, thread, cache_miss.embedding)

        return usage

    def _generate(
        self,
        thread: Thread,
        request: ChatRequest,
        cancel: threading.Event | None,
    ) -> TokensUsage:
        try:
            response = self._create(request)
        except ChatModelError:
            raise
        except Exception as e:
            raise ProviderError(
                self.name, f"chat completion failed: {e}"
            ) from e

        if self.usage_callback is not None and response.usage is not None:
            self.usage_callback(response.usage.model_dump())

        if not response.choices:
            raise ProtocolError(self.name, "no choices returned")

        choice = response.choices[0]
        messages: list[Message]
        if choice.has_tool_calls():
            calls = [
                self._to_tool_call(c)
                for c in choice.message.tool_calls or []
            ]
            if not calls:
                raise ProtocolError(
                    self.name, "tool_calls finish reason without tool calls"
                )
            self._check_cancel(cancel)
            messages = [tool_call_message(calls)]
            messages.extend(self.tools.dispatch(calls))
        else:
            messages = [assistant_message(choice.message.content or "")]

        thread.add_messages(*messages)
        return TokensUsage.from_usage(response.usage)

    def _stream(
        self,
        thread: Thread,
        request: ChatRequest,
        callback: StreamCallback,
        cancel: threading.Event | None,
    ) -> None:
        content = ""
        calls: list[ToolCallContent] = []
        current: _PendingToolCall | None = None

        chunks = self._receive(request)
        try:
            for chunk in chunks:
                self._check_cancel(cancel)
                if not chunk.choices:
                    raise ProtocolError(self.name, "no choices returned")

                choice = chunk.choices[0]
                if choice.has_tool_calls():
                    for delta_call in choice.delta.tool_calls or []:
                        arguments = delta_call.function.arguments or ""
                        if delta_call.id:
                            if current is not None:
                                calls.append(self._commit(current))
                            current = _PendingToolCall(
                                id=delta_call.id,
                                name=delta_call.function.name or "",
                                arguments=arguments,
                            )
                        elif current is not None:
                            current.arguments += arguments
                        elif arguments:
                            raise ProtocolError(
                                self.name,
                                "tool call arguments received before "
                                + "the tool call",
                            )
                else:
                    content += choice.delta.content or ""

                callback(choice.delta.content or "")
        finally:
            chunks.close()

        # end of stream
        callback(EOS)
        if current is not None:
            calls.append(self._commit(current))

        messages: list[Message] = []
        if calls:
            # tool calls win over the text streamed in the same reply
            self._check_cancel(cancel)
            messages.append(tool_call_message(calls))
            messages.extend(self.tools.dispatch(calls))
        elif content:
            messages.append(assistant_message(content))

        thread.add_messages(*messages)

    def _receive(self, request: ChatRequest) -> Iterator[ChatChunk]:
        """The chunks of the stream, with provider errors wrapped."""
        try:
            stream = iter(self._create_stream(request))
        except Exception as e:
            raise ProviderError(
                self.name, f"chat completion stream failed: {e}"
            ) from e

        try:
            while True:
                try:
                    chunk = next(stream)
                except StopIteration:
                    return
                except ChatModelError:
                    raise
                except Exception as e:
                    raise ProviderError(
                        self.name, f"chat completion stream failed: {e}"
                    ) from e
                yield chunk
        finally:
            close = getattr(stream, "close", None)
            if callable(close):
                close()

    def _to_tool_call(self, call: WireToolCall) -> ToolCallContent:
        if not call.id or not call.function.name:
            raise ProtocolError(
                self.name, f"malformed tool call: {call.model_dump()}"
            )
        return ToolCallContent(
            id=call.id,
            name=call.function.name,
            arguments=call.function.arguments or "",
        )

    def _commit(self, pending: _PendingToolCall) -> ToolCallContent:
        if not pending.name:
            raise ProtocolError(
                self.name, f"tool call {pending.id} without function name"
            )
        return ToolCallContent(
            id=pending.id, name=pending.name, arguments=pending.arguments
        )

    def _check_cancel(self, cancel: threading.Event | None) -> None:
        if cancel is not None and cancel.is_set():
            raise GenerationCancelledError(self.name, "generation cancelled")

    # Cache ----------------------------------------------------------
    def _get_cache(self, cache: BaseCache, thread: Thread) -> None:
        """Append the cached answer to the thread.

        Raises:
            CacheMissError: if there is no cached answer.
            ChatModelError: if the cache failed.
        """
        try:
            result = cache.get(thread.user_query())
        except CacheMissError:
            self.logger.info(f"{self.name}: cache miss")
            raise
        except Exception as e:
            raise ChatModelError(
                self.name, f"cache lookup failed: {e}"
            ) from e

        self.logger.info(f"{self.name}: cache hit")
        thread.add_message(assistant_message("\n".join(result.answer)))

    def _set_cache(
        self, cache: BaseCache, thread: Thread, embedding: list[float]
    ) -> None:
        # Only plain-text answers are cached: answers with tool calls
        # or other contents are skipped.
        last = thread.last_message()
        if last is None or last.role != Role.ASSISTANT:
            return
        if not last.is_text_only():
            return

        try:
            cache.set(embedding, last.text())
        except Exception as e:
            raise ChatModelError(
                self.name, f"cache write failed: {e}"
            ) from e

    # Observation ----------------------------------------------------
    def _start_observe(self, thread: Thread) -> Generation | None:
        try:
            return start_observe_generation(
                self.name,
                self.settings.get_model_name(),
                {
                    "max_tokens": self.settings.max_tokens,
                    "temperature": self.settings.temperature,
                },
                list(thread.messages),
            )
        except Exception as e:
            raise ObserverError(self.name, f"observer failed: {e}") from e

    def _stop_observe(
        self, generation: Generation | None, messages: list[Message]
    ) -> None:
        try:
            stop_observe_generation(generation, messages)
        except Exception as e:
            raise ObserverError(self.name, f"observer failed: {e}") from e

    def _stop_failed_observe(self, generation: Generation | None) -> None:
        # the error of the call is the one raised
        try:
            stop_observe_generation(generation, [])
        except Exception as e:
            self.logger.error(f"{self.name}: observer failed: {e}")
