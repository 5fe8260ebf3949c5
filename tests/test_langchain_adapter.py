"""Test the LangChain chat model backend with langchain_core fake
chat models"""

# pyright: basic

import unittest
from typing import Any

from pydantic import Field
from langchain_core.language_models.fake_chat_models import (
    GenericFakeChatModel,
)
from langchain_core.messages import (
    AIMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_core.messages.tool import invalid_tool_call

from lmo.config.config import LanguageModelSettings
from lmo.language_models.base import EOS
from lmo.language_models.factory import create_chat_model
from lmo.language_models.langchain import (
    LangChainChatModel,
    to_langchain_messages,
)
from lmo.language_models.langchain.adapter import RAW_ARGUMENTS_KEY
from lmo.language_models.openai import LocalAIChatModel, OpenAIChatModel
from lmo.language_models.thread import (
    Role,
    Thread,
    ToolCallContent,
    system_message,
    tool_call_message,
    tool_response_message,
    user_message,
)
from lmo.language_models.tools import tool
from lmo.language_models.wire import TokensUsage


class ToolFakeChatModel(GenericFakeChatModel):
    """A fake chat model recording the tools bound to it and the
    arguments of the calls."""

    bound_tools: list[Any] = Field(default_factory=list)
    bound_choice: str | None = None
    call_kwargs: list[dict[str, Any]] = Field(default_factory=list)

    def bind_tools(self, tools, *, tool_choice=None, **kwargs):
        self.bound_tools = list(tools)
        self.bound_choice = tool_choice
        return self

    def _generate(self, messages, stop=None, run_manager=None, **kwargs):
        self.call_kwargs.append(dict(kwargs, stop=stop))
        return super()._generate(
            messages, stop=stop, run_manager=run_manager, **kwargs
        )


@tool
def add(a: int, b: int) -> int:
    "Add two integers."
    return a + b


SETTINGS = LanguageModelSettings(model="Anthropic/claude-3-5-haiku-latest")


def new_thread() -> Thread:
    return Thread().add_message(user_message("What is 2 + 3?"))


class TestMessageConversion(unittest.TestCase):

    def test_roles(self):
        self.assertIsInstance(
            to_langchain_messages(system_message("be brief"))[0],
            SystemMessage,
        )
        human = to_langchain_messages(user_message("hi"))[0]
        self.assertIsInstance(human, HumanMessage)
        self.assertEqual(human.content, "hi")

    def test_image(self):
        human = to_langchain_messages(
            user_message("what is this?", images=["http://img/1.png"])
        )[0]
        self.assertEqual(len(human.content), 2)
        self.assertEqual(human.content[1]["type"], "image_url")

    def test_tool_call_and_result(self):
        call = ToolCallContent(id="c1", name="add", arguments='{"a": 2, "b": 3}')
        ai = to_langchain_messages(tool_call_message([call]))[0]
        self.assertIsInstance(ai, AIMessage)
        self.assertEqual(ai.tool_calls[0]["id"], "c1")
        self.assertEqual(ai.tool_calls[0]["args"], {"a": 2, "b": 3})

        result = to_langchain_messages(tool_response_message(call, "5"))[0]
        self.assertIsInstance(result, ToolMessage)
        self.assertEqual(result.tool_call_id, "c1")
        self.assertEqual(result.content, "5")

    def test_malformed_arguments_passed_raw(self):
        call = ToolCallContent(id="c1", name="add", arguments='{"a": 1,')
        ai = to_langchain_messages(tool_call_message([call]))[0]
        self.assertEqual(ai.tool_calls[0]["id"], "c1")
        self.assertEqual(
            ai.tool_calls[0]["args"], {RAW_ARGUMENTS_KEY: '{"a": 1,'}
        )

        listed = ToolCallContent(id="c2", name="add", arguments="[1, 2]")
        ai = to_langchain_messages(tool_call_message([listed]))[0]
        self.assertEqual(
            ai.tool_calls[0]["args"], {RAW_ARGUMENTS_KEY: "[1, 2]"}
        )


class TestLangChainChatModel(unittest.TestCase):

    def test_text_answer(self):
        fake = GenericFakeChatModel(messages=iter(["five"]))
        model = LangChainChatModel(SETTINGS, model=fake)
        thread = new_thread()
        model.generate(thread)

        self.assertEqual(len(thread), 2)
        self.assertEqual(thread.last_message().role, Role.ASSISTANT)
        self.assertEqual(thread.last_message().text(), "five")

    def test_usage(self):
        fake = GenericFakeChatModel(
            messages=iter(
                [
                    AIMessage(
                        content="five",
                        usage_metadata={
                            "input_tokens": 3,
                            "output_tokens": 2,
                            "total_tokens": 5,
                        },
                    )
                ]
            )
        )
        model = LangChainChatModel(SETTINGS, model=fake)
        usage = model.generate_with_usage(new_thread())
        self.assertEqual(usage.prompt_tokens, 3)
        self.assertEqual(usage.completion_tokens, 2)

    def test_tool_calls(self):
        fake = ToolFakeChatModel(
            messages=iter(
                [
                    AIMessage(
                        content="",
                        tool_calls=[
                            {"name": "add", "args": {"a": 2, "b": 3}, "id": "c1"},
                            {"name": "add", "args": {"a": 1, "b": 1}, "id": "c2"},
                        ],
                    )
                ]
            )
        )
        settings = SETTINGS.from_instance(tool_choice="auto")
        model = LangChainChatModel(settings, model=fake, tools=[add])
        thread = new_thread()
        model.generate(thread)

        self.assertEqual(fake.bound_choice, "auto")
        self.assertEqual(
            fake.bound_tools[0]["function"]["name"], "add"
        )
        messages = thread.messages
        self.assertEqual(len(messages), 4)
        self.assertEqual([c.id for c in messages[1].tool_calls()], ["c1", "c2"])
        self.assertEqual(
            [m.contents[0].result for m in messages[2:]], ["5", "2"]
        )

    def test_forced_tool_choice(self):
        fake = ToolFakeChatModel(messages=iter(["done"]))
        settings = SETTINGS.from_instance(tool_choice="add")
        model = LangChainChatModel(settings, model=fake, tools=[add])
        model.generate(new_thread())
        self.assertEqual(fake.bound_choice, "add")

    def test_required_tool_choice(self):
        fake = ToolFakeChatModel(messages=iter(["done"]))
        settings = SETTINGS.from_instance(tool_choice="required")
        model = LangChainChatModel(settings, model=fake, tools=[add])
        model.generate(new_thread())
        self.assertEqual(fake.bound_choice, "any")

    def test_tools_not_bound_when_disabled(self):
        fake = ToolFakeChatModel(messages=iter(["done"]))
        model = LangChainChatModel(SETTINGS, model=fake, tools=[add])
        model.generate(new_thread())
        self.assertEqual(fake.bound_tools, [])

    def test_stream(self):
        fake = GenericFakeChatModel(messages=iter(["Hello world"]))
        model = LangChainChatModel(SETTINGS, model=fake)
        received: list[str] = []
        thread = new_thread()
        model.stream(thread, received.append)

        self.assertEqual(received[-1], EOS)
        self.assertEqual("".join(received[:-1]), "Hello world")
        self.assertEqual(thread.last_message().text(), "Hello world")

    def test_stream_zero_usage(self):
        fake = GenericFakeChatModel(messages=iter(["Hello"]))
        model = LangChainChatModel(
            SETTINGS, model=fake, stream_callback=lambda _: None
        )
        self.assertEqual(model.generate_with_usage(new_thread()), TokensUsage())

    def test_malformed_arguments_next_turn(self):
        fake = ToolFakeChatModel(
            messages=iter(
                [
                    AIMessage(
                        content="",
                        invalid_tool_calls=[
                            invalid_tool_call(
                                name="add",
                                args='{"a": 1,',
                                id="c1",
                                error="invalid JSON",
                            )
                        ],
                    ),
                    "Sorry, let me retry.",
                ]
            )
        )
        settings = SETTINGS.from_instance(tool_choice="auto")
        model = LangChainChatModel(settings, model=fake, tools=[add])
        thread = new_thread()
        model.generate(thread)

        self.assertEqual(len(thread), 3)
        self.assertEqual(
            thread.messages[1].tool_calls()[0].arguments, '{"a": 1,'
        )
        self.assertTrue(
            thread.messages[2].contents[0].result.startswith("error:")
        )

        # the history with the malformed call is sent again
        model.generate(thread)
        self.assertEqual(len(thread), 4)
        self.assertEqual(thread.last_message().text(), "Sorry, let me retry.")

    def test_response_format_passed(self):
        fake = ToolFakeChatModel(messages=iter(['{"answer": 5}']))
        settings = LanguageModelSettings(
            model="Mistral/mistral-small-latest",
            response_format="json_object",
            stop=("END",),
        )
        model = LangChainChatModel(settings, model=fake)
        model.generate(new_thread())

        self.assertEqual(
            fake.call_kwargs[0]["response_format"], {"type": "json_object"}
        )
        self.assertEqual(fake.call_kwargs[0]["stop"], ["END"])
        self.assertNotIn("reasoning_effort", fake.call_kwargs[0])

    def test_openai_parameters_passed_when_streaming(self):
        fake = ToolFakeChatModel(messages=iter(["Hello"]))
        settings = LanguageModelSettings(
            model="OpenAI/o4-mini",
            max_completion_tokens=200,
            reasoning_effort="low",
        )
        model = LangChainChatModel(settings, model=fake)
        model.stream(new_thread(), lambda _: None)

        self.assertEqual(fake.call_kwargs[0]["max_completion_tokens"], 200)
        self.assertEqual(fake.call_kwargs[0]["reasoning_effort"], "low")
        self.assertNotIn("response_format", fake.call_kwargs[0])

    def test_unsupported_parameters_rejected(self):
        fake = GenericFakeChatModel(messages=iter(["five"]))
        with self.assertRaises(ValueError):
            LangChainChatModel(
                SETTINGS.from_instance(response_format="json_object"),
                model=fake,
            )
        with self.assertRaises(ValueError):
            LangChainChatModel(
                LanguageModelSettings(
                    model="Mistral/mistral-small-latest",
                    reasoning_effort="high",
                ),
                model=fake,
            )

    def test_debug_source(self):
        settings = LanguageModelSettings(
            model="Debug/fake", provider_params={"message": "constant reply"}
        )
        model = create_chat_model(settings)
        self.assertIsInstance(model, LangChainChatModel)
        thread = new_thread()
        model.generate(thread)
        self.assertEqual(thread.last_message().text(), "constant reply")


class TestFactory(unittest.TestCase):

    def test_backends(self):
        self.assertIsInstance(
            create_chat_model(LanguageModelSettings(model="OpenAI/gpt-4o")),
            OpenAIChatModel,
        )
        self.assertIsInstance(
            create_chat_model(
                LanguageModelSettings(
                    model="LocalAI/llama", base_url="http://localhost:8080/v1"
                )
            ),
            LocalAIChatModel,
        )
        self.assertIsInstance(create_chat_model(SETTINGS), LangChainChatModel)

    def test_kwargs_passed(self):
        model = create_chat_model(SETTINGS, tools=[add], name="major")
        self.assertEqual(model.name, "major")
        self.assertIn("add", model.tools)


if __name__ == '__main__':
    unittest.main()
