"""
Iterators of messages, used to feed the replies of the fake chat
model of the 'Debug' source.
"""

from typing import Iterator


class MessageIterator:
    """
    An infinite iterator of sequential messages of the form
    "{prefix} {counter}", the counter starting at 1.
    """

    def __init__(self, prefix: str = "Message") -> None:
        self.prefix = prefix
        self.counter = 1

    def __iter__(self) -> Iterator[str]:
        return self

    def __next__(self) -> str:
        message = f"{self.prefix} {self.counter}"
        self.counter += 1
        return message


class ConstantMessageIterator:
    """An infinite iterator repeating the same message."""

    def __init__(self, message: str = "Message") -> None:
        self.message = message

    def __iter__(self) -> Iterator[str]:
        return self

    def __next__(self) -> str:
        return self.message


def yield_message(prefix: str = "Message") -> MessageIterator:
    """
    Example:
        >>> iterator = yield_message("Alert")
        >>> next(iterator)
        'Alert 1'
        >>> next(iterator)
        'Alert 2'
    """
    return MessageIterator(prefix)


def yield_constant_message(
    message: str = "Message",
) -> ConstantMessageIterator:
    """
    Example:
        >>> iterator = yield_constant_message("Alert")
        >>> next(iterator)
        'Alert'
        >>> next(iterator)
        'Alert'
    """
    return ConstantMessageIterator(message)
