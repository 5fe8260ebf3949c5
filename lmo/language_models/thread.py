"""
The conversation thread: an append-only log of the messages exchanged
with a language model.

A `Thread` is the shared state of a conversation. The caller adds the
initial messages; the chat model appends the assistant replies, the
tool-call records, and the tool results. Messages are frozen pydantic
objects and the thread offers no way to remove or replace them, so
that a thread handed to an observer cannot change what was already
recorded.

A message carries an ordered list of contents. The content types
form a tagged union discriminated by the `type` field:

    - TextContent: text
    - ImageContent: an image reference (url or data url)
    - ToolCallContent: a request from the model to call a tool
    - ToolResponseContent: the result of a tool call

Example:
    ```python
    from lmo.language_models.thread import (
        Thread,
        system_message,
        user_message,
    )

    thread = Thread().add_messages(
        system_message("You are a helpful assistant."),
        user_message("What is the capital of Italy?"),
    )
    model.generate(thread)
    print(thread.last_message().text())
    ```
"""

from collections.abc import Iterator
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class Role(StrEnum):
    SYSTEM = 'system'
    USER = 'user'
    ASSISTANT = 'assistant'
    TOOL = 'tool'


class TextContent(BaseModel):
    type: Literal['text'] = 'text'
    data: str

    model_config = ConfigDict(frozen=True)


class ImageContent(BaseModel):
    type: Literal['image'] = 'image'
    url: str
    detail: Literal['auto', 'low', 'high'] = 'auto'

    model_config = ConfigDict(frozen=True)


class ToolCallContent(BaseModel):
    """Represents a tool call requested by the model."""

    type: Literal['tool_call'] = 'tool_call'
    id: str
    name: str
    arguments: str = Field(
        default="", description="JSON-encoded arguments of the call"
    )

    model_config = ConfigDict(frozen=True)


class ToolResponseContent(BaseModel):
    """The result of a tool call, referencing the call id."""

    type: Literal['tool_response'] = 'tool_response'
    id: str
    name: str
    result: str

    model_config = ConfigDict(frozen=True)


Content = Annotated[
    TextContent | ImageContent | ToolCallContent | ToolResponseContent,
    Field(discriminator='type'),
]


class Message(BaseModel):
    """Represents a message in a chat conversation."""

    role: Role
    contents: tuple[Content, ...] = ()

    model_config = ConfigDict(frozen=True)

    def is_empty(self) -> bool:
        return not self.contents

    def text(self) -> str:
        """The text contents of the message, joined by newlines."""
        return "\n".join(
            c.data for c in self.contents if isinstance(c, TextContent)
        )

    def is_text_only(self) -> bool:
        return bool(self.contents) and all(
            isinstance(c, TextContent) for c in self.contents
        )

    def tool_calls(self) -> list[ToolCallContent]:
        return [
            c for c in self.contents if isinstance(c, ToolCallContent)
        ]

    def __str__(self) -> str:
        parts: list[str] = [f"{self.role}:"]
        for content in self.contents:
            match content:
                case TextContent(data=data):
                    parts.append(f"\tText: {data}")
                case ImageContent(url=url):
                    parts.append(f"\tImage: {url}")
                case ToolCallContent(id=call_id, name=name, arguments=args):
                    parts.append(f"\tTool call {name} (id: {call_id}): {args}")
                case ToolResponseContent(id=call_id, name=name, result=result):
                    parts.append(
                        f"\tTool result {name} (id: {call_id}): {result}"
                    )
        return "\n".join(parts)


def system_message(text: str) -> Message:
    return Message(role=Role.SYSTEM, contents=(TextContent(data=text),))


def user_message(
    text: str, *, images: list[str] | None = None
) -> Message:
    contents: list[Content] = [TextContent(data=text)]
    for url in images or []:
        contents.append(ImageContent(url=url))
    return Message(role=Role.USER, contents=tuple(contents))


def assistant_message(text: str) -> Message:
    return Message(
        role=Role.ASSISTANT, contents=(TextContent(data=text),)
    )


def tool_call_message(calls: list[ToolCallContent]) -> Message:
    """The assistant message recording the tool calls of the model."""
    return Message(role=Role.ASSISTANT, contents=tuple(calls))


def tool_response_message(
    call: ToolCallContent, result: str
) -> Message:
    """The tool message with the result of a call."""
    return Message(
        role=Role.TOOL,
        contents=(
            ToolResponseContent(id=call.id, name=call.name, result=result),
        ),
    )


class Thread:
    """
    An ordered, append-only sequence of messages.

    The order of the messages is the chronological and causal order of
    the conversation. Messages are only ever appended.
    """

    def __init__(self, messages: list[Message] | None = None) -> None:
        self._messages: list[Message] = list(messages or [])

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def add_message(self, message: Message) -> 'Thread':
        self._messages.append(message)
        return self

    def add_messages(self, *messages: Message) -> 'Thread':
        self._messages.extend(messages)
        return self

    def last_message(self) -> Message | None:
        """The most recently appended message, None if the thread is
        empty."""
        if not self._messages:
            return None
        return self._messages[-1]

    def count_messages(self) -> int:
        return len(self._messages)

    def user_query(self) -> str:
        """The text of all the user messages, one per line. This is
        the key used to look up the semantic cache."""
        return "\n".join(
            content.data
            for message in self._messages
            if message.role == Role.USER
            for content in message.contents
            if isinstance(content, TextContent)
        )

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __str__(self) -> str:
        return "Thread:\n" + "\n".join(str(m) for m in self._messages)
