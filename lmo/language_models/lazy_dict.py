"""
The utility class `LazyLoadingDict` stores memoized objects produced
by a factory function from a hashable definition.

In this package it holds the provider objects that are expensive to
create and safe to share: the OpenAI SDK clients (keyed by endpoint,
key, timeout and retries), the LangChain chat models and the
LangChain embedding models (keyed by their settings objects). The
chat model objects of lmo, which own a tool registry and a cache, are
never memoized.

The keys are frozen pydantic models, so that an invalid definition
raises a ValidationError when the key is built, and the factory
raises a ValueError for definitions it cannot honour.

Example:
    ```python
    from pydantic import BaseModel, ConfigDict

    class ClientSpec(BaseModel):
        base_url: str | None = None
        model_config = ConfigDict(frozen=True)

    def _create_client(spec: ClientSpec) -> OpenAI:
        return OpenAI(base_url=spec.base_url)

    clients = LazyLoadingDict(_create_client)
    client = clients[ClientSpec()]          # created
    client = clients[ClientSpec()]          # memoized
    ```

Values that have a `close` or `dispose` method are closed when they
are removed from the dictionary.
"""

from collections.abc import Callable
from typing import TypeVar

# ValueT is the parameter for the stored valued, KeyT for the keys.
ValueT = TypeVar('ValueT')
KeyT = TypeVar('KeyT')


class LazyLoadingDict(dict[KeyT, ValueT]):
    """A lazy dictionary class with memoized object of type ValueT.

    Expected behaviour: may raise ValidationError and ValueErrors.
    """

    def __init__(
        self,
        key_creator_func: Callable[[KeyT], ValueT],
        destructor_func: Callable[[ValueT], None] | None = None,
    ):
        super().__init__()
        self._key_creator_func = key_creator_func
        self._destructor_func = destructor_func

    def _destroy_value(self, value: ValueT) -> None:
        if self._destructor_func:
            self._destructor_func(value)
        elif hasattr(value, "close") and callable(value.close):  # type: ignore (self-reflection)
            value.close()  # type: ignore (checked)
        elif hasattr(value, "dispose") and callable(value.dispose):  # type: ignore (self-reflection)
            value.dispose()  # type: ignore (checked)

    def __getitem__(self, key: KeyT) -> ValueT:
        if key in self:
            return super().__getitem__(key)

        value: ValueT = self._key_creator_func(key)
        super().__setitem__(key, value)
        return value

    def __setitem__(self, key: KeyT, value: ValueT) -> None:
        """Allow direct setting of key/value pairs, bypassing the
        factory function for the given key.

        Raises:
            ValueError: If the key already exists in the dictionary.
        """
        if key in self:
            raise ValueError(
                f"Key '{key}' already exists. Delete it first to overwrite."
            )
        super().__setitem__(key, value)

    def __delitem__(self, key: KeyT) -> None:
        if key in self:
            self._destroy_value(super().__getitem__(key))
        super().__delitem__(key)

    def clear(self) -> None:
        for value in list(self.values()):
            self._destroy_value(value)
        super().clear()
