"""
Tools are functions that the language model may ask to call. A tool
is registered with a chat model through a `ToolRegistry`; the chat
model sends the tool schemas with each request and dispatches the
calls the model makes, appending one tool message with the result of
each call to the thread.

The arguments of a tool are described by a pydantic model. The JSON
schema of the model is the parameter schema sent to the provider, and
the JSON arguments produced by the model are validated against it
before the function is called. A function may take the pydantic model
as its only argument, or plain annotated arguments, from which the
model is created.

Example:
    ```python
    from pydantic import BaseModel, Field
    from lmo.language_models.tools import tool, ToolRegistry

    class WeatherQuery(BaseModel):
        city: str = Field(description="the city name")

    @tool
    def get_weather(query: WeatherQuery) -> str:
        "Get the current weather in a city."
        return f"It is sunny in {query.city}"

    @tool(name="add")
    def add_numbers(a: int, b: int) -> int:
        "Add two integers."
        return a + b

    registry = ToolRegistry([get_weather, add_numbers])
    ```

Errors in a tool call (unknown tool, invalid arguments, an exception
raised by the function) do not interrupt the generation: the error
text becomes the result of the call, so that the model may correct
itself.
"""

import inspect
import json
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from typing import Any, get_type_hints

from pydantic import (
    BaseModel,
    ConfigDict,
    ValidationError,
    create_model,
)

from lmo.config.config import format_pydantic_error_message
from lmo.utils import logger as default_logger
from lmo.utils.logging import LoggerBase

from .errors import ToolArgumentsError, ToolError
from .thread import Message, ToolCallContent, tool_response_message


def encode_result(result: Any) -> str:
    """Encode the return value of a tool as the content of the tool
    message. Strings are passed as they are."""
    match result:
        case str():
            return result
        case BaseModel():
            return result.model_dump_json()
        case None:
            return ""
        case _:
            return json.dumps(result, default=str)


class Tool(BaseModel):
    """Groups the properties that define a tool."""

    name: str
    description: str = ""
    args_model: type[BaseModel]
    fn: Callable[..., Any]
    # True when fn takes the fields of args_model as keyword arguments
    unpack_args: bool = False

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @classmethod
    def from_function(
        cls,
        fn: Callable[..., Any],
        *,
        name: str | None = None,
        description: str | None = None,
    ) -> 'Tool':
        hints = get_type_hints(fn)
        params = list(inspect.signature(fn).parameters.values())
        tool_name = name or fn.__name__
        tool_description = description or inspect.getdoc(fn) or ""

        if len(params) == 1:
            annotation = hints.get(params[0].name)
            if inspect.isclass(annotation) and issubclass(
                annotation, BaseModel
            ):
                return cls(
                    name=tool_name,
                    description=tool_description,
                    args_model=annotation,
                    fn=fn,
                )

        fields: dict[str, Any] = {}
        for param in params:
            if param.kind in (
                inspect.Parameter.VAR_POSITIONAL,
                inspect.Parameter.VAR_KEYWORD,
            ):
                raise ValueError(
                    f"Tool {tool_name}: variadic arguments not supported"
                )
            default = (
                ... if param.default is inspect.Parameter.empty
                else param.default
            )
            fields[param.name] = (hints.get(param.name, Any), default)

        args_model = create_model(f"{tool_name}_arguments", **fields)
        return cls(
            name=tool_name,
            description=tool_description,
            args_model=args_model,
            fn=fn,
            unpack_args=True,
        )

    @property
    def parameters(self) -> dict[str, Any]:
        """The JSON schema of the arguments."""
        return self.args_model.model_json_schema()

    def definition(self) -> dict[str, Any]:
        """The tool definition sent to the provider."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def decode_arguments(self, arguments: str) -> BaseModel:
        """Validate the JSON arguments against the argument model.

        Raises:
            ToolArgumentsError: if the arguments are not valid JSON or
                do not match the schema.
        """
        try:
            return self.args_model.model_validate_json(
                arguments.strip() or "{}"
            )
        except ValidationError as e:
            raise ToolArgumentsError(
                f"invalid arguments for {self.name}: "
                + format_pydantic_error_message(str(e))
            ) from e

    def invoke(self, arguments: str) -> str:
        """Call the tool with JSON-encoded arguments and return the
        encoded result."""
        args = self.decode_arguments(arguments)
        if self.unpack_args:
            kwargs = {
                field: getattr(args, field)
                for field in type(args).model_fields
            }
            result = self.fn(**kwargs)
        else:
            result = self.fn(args)
        return encode_result(result)


def tool(
    fn: Callable[..., Any] | None = None,
    *,
    name: str | None = None,
    description: str | None = None,
) -> Any:
    """Decorator creating a Tool from a function. The description
    defaults to the function docstring."""

    def decorate(f: Callable[..., Any]) -> Tool:
        return Tool.from_function(f, name=name, description=description)

    if fn is None:
        return decorate
    return decorate(fn)


class ToolRegistry:
    """
    The tools available to a chat model, in registration order.

    The registry is only read during a generation call. Calls are
    dispatched sequentially unless max_workers is greater than one;
    in both cases the result messages follow the order of the calls.
    """

    def __init__(
        self,
        tools: Iterable[Tool] = (),
        *,
        max_workers: int | None = None,
        logger: LoggerBase = default_logger,
    ) -> None:
        self._tools: dict[str, Tool] = {}
        self.max_workers = max_workers
        self.logger = logger
        self.register(*tools)

    def register(self, *tools: Tool) -> 'ToolRegistry':
        """
        Raises:
            ValueError: if a tool with the same name is registered.
        """
        for t in tools:
            if t.name in self._tools:
                raise ValueError(f"Tool '{t.name}' already registered")
            self._tools[t.name] = t
        return self

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def definitions(self) -> list[dict[str, Any]]:
        return [t.definition() for t in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(list(self._tools.values()))

    def call(self, call: ToolCallContent) -> str:
        """Invoke the tool named by the call.

        Raises:
            ToolError: if the tool is not registered.
            ToolArgumentsError: if the arguments do not validate.
        """
        fn = self._tools.get(call.name)
        if fn is None:
            raise ToolError(f"unknown function {call.name}")
        return fn.invoke(call.arguments)

    def _call_to_result(self, call: ToolCallContent) -> str:
        try:
            return self.call(call)
        except Exception as e:
            # the error is the result the model will see
            self.logger.warning(
                f"Tool call {call.name} (id: {call.id}) failed: {e}"
            )
            return f"error: {e}"

    def dispatch(self, calls: list[ToolCallContent]) -> list[Message]:
        """Call the tools and return one tool message per call, in the
        order of the calls. Returns an empty list if the registry or
        the call list are empty."""
        if not self._tools or not calls:
            return []

        if self.max_workers and self.max_workers > 1 and len(calls) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as ex:
                results = list(ex.map(self._call_to_result, calls))
        else:
            results = [self._call_to_result(call) for call in calls]

        return [
            tool_response_message(call, result)
            for call, result in zip(calls, results)
        ]
