"""
Agent loop: repeated generation calls on a thread, until the model
gives an answer without tool calls or the maximum number of
iterations is reached.

The agent is a small state machine,

    RUNNING -> DONE       the last call produced no tool calls
    RUNNING -> EXHAUSTED  max_iterations calls all produced tool calls

The decision is structural: the agent only checks whether the
messages appended by the last call contain tool calls.

Example:
    ```python
    from lmo.config import LanguageModelSettings, AgentSettings
    from lmo.language_models import Agent, AgentState, create_chat_model
    from lmo.tools import SerpApiTool

    model = create_chat_model(
        LanguageModelSettings(model="OpenAI/gpt-4o", tool_choice="auto"),
        tools=[SerpApiTool(api_key="...")],
    )
    agent = Agent(
        model,
        parameters=AgentSettings(name="AI Assistant", scope="answering questions"),
        max_iterations=5,
    )
    state = agent.run("search the top 3 italian dishes")
    if state is AgentState.EXHAUSTED:
        print("no final answer")
    print(agent.thread)
    ```
"""

from enum import Enum
from typing import Any

from lmo.config.config import AgentSettings
from lmo.utils import logger as default_logger
from lmo.utils.logging import LoggerBase

from .base import BaseChatModel
from .prompts import agent_prompts, assistant_system_prompt
from .thread import Role, Thread, system_message, user_message


class AgentState(Enum):
    RUNNING = "running"
    DONE = "done"
    EXHAUSTED = "exhausted"


class Agent:
    """
    An agent wraps a chat model and a thread, and calls the model on
    the thread until the answer has no tool calls.

    Args:
        model: the chat model, with the tools the agent may use.
        thread: the conversation (a new thread if not given).
        parameters: the assistant identity; when given, a system prompt
            is added to the thread if it is empty.
        max_iterations: the maximum number of generation calls of a
            run. Defaults to parameters.max_iterations, or 10.
        prompt: the template of the user prompt used by invoke.
        logger: logger of the agent termination.
    """

    def __init__(
        self,
        model: BaseChatModel,
        thread: Thread | None = None,
        *,
        parameters: AgentSettings | None = None,
        max_iterations: int | None = None,
        prompt: str | None = None,
        logger: LoggerBase = default_logger,
    ):
        if max_iterations is None:
            max_iterations = (
                parameters.max_iterations if parameters else 10
            )
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")

        self.model = model
        self.thread = thread if thread is not None else Thread()
        self.parameters = parameters
        self.max_iterations = max_iterations
        self.prompt_template = prompt or agent_prompts["query"]
        self.logger = logger
        self.state = AgentState.RUNNING
        self.iterations = 0

    def run(self, query: str | None = None) -> AgentState:
        """
        Run the loop on the thread, after adding the query as a user
        message if given.

        Returns:
            AgentState.DONE or AgentState.EXHAUSTED. Exhaustion is not
            an error: the caller checks the state.

        Raises:
            ChatModelError: if a generation call fails. The messages
                appended before the failure stay in the thread.
        """
        if self.parameters is not None and len(self.thread) == 0:
            self.thread.add_message(
                system_message(assistant_system_prompt(self.parameters))
            )
        if query is not None:
            self.thread.add_message(user_message(query))

        self.state = AgentState.RUNNING
        self.iterations = 0
        while self.state is AgentState.RUNNING:
            if self.iterations >= self.max_iterations:
                self.state = AgentState.EXHAUSTED
                self.logger.warning(
                    f"{self.model.name}: agent stopped after "
                    f"{self.iterations} iterations without a final answer"
                )
                break

            n_before = len(self.thread)
            self.model.generate(self.thread)
            self.iterations += 1

            new_messages = self.thread.messages[n_before:]
            if not any(m.tool_calls() for m in new_messages):
                self.state = AgentState.DONE
                self.logger.info(
                    f"{self.model.name}: agent done after "
                    f"{self.iterations} iterations"
                )

        return self.state

    def invoke(self, input_data: str | dict[str, Any]) -> str:
        """
        Format the prompt template with the input, run the loop and
        return the text of the last assistant message.

        Args:
            input_data: a string, formatted as {text} in the template,
                or a dictionary with the template fields.

        Returns:
            The text of the answer, or an empty string if the loop was
            exhausted.
        """
        if isinstance(input_data, str):
            query = self.prompt_template.format(text=input_data)
        else:
            query = self.prompt_template.format(**input_data)

        if self.run(query) is AgentState.EXHAUSTED:
            return ""

        last = self.thread.last_message()
        if last is None or last.role != Role.ASSISTANT:
            return ""
        return last.text()
