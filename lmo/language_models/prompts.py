"""
Prompt templates of the agents.

This module contains a set of predefined prompt templates,

    - "assistant": the system prompt of an assistant, formatted with
        the fields of AgentSettings
    - "assistant_company": the same, for an assistant working for a
        company
    - "query": the default user prompt of Agent.invoke
    - "query_with_context": a user prompt with a context text

These prompts may be retrieved from the module-level dictionary
`agent_prompts`, as shown in the example below.

**Example**:

    ```python
    from lmo.language_models.prompts import agent_prompts
    prompt_template: str = agent_prompts["query_with_context"]
    ```

New prompt text templates may be added dynamically to the dictionary
with the `create_prompt` function.

**Example**:

    ```python
    from lmo.language_models.prompts import agent_prompts, create_prompt

    create_prompt("Translate into Italian:\\n{text}", "translate")
    agent = Agent(model, prompt=agent_prompts["translate"])
    ```
"""

from typing import Literal

from lmo.config.config import AgentSettings

from .lazy_dict import LazyLoadingDict

PromptNames = Literal[
    "assistant",
    "assistant_company",
    "query",
    "query_with_context",
]


def _get_prompts(prompt_name: PromptNames) -> str:
    match prompt_name:
        case "assistant":
            return """Your name is {name}, and you are {identity}. \
Your task is to assist humans {scope}."""
        case "assistant_company":
            return """Your name is {name}, and you are {identity} at \
{company_name}{company_description}. Your task is to assist humans \
{scope}."""
        case "query":
            return "{text}"
        case "query_with_context":
            return """Please answer the user QUERY. Use the CONTEXT if it \
helps answering the query.
----
CONTEXT: "{context}"

----
QUERY:  "{text}"
"""
        case _:  # do not remove this
            raise ValueError(f"Invalid prompt: {prompt_name}")


# a module-level typed dictionary for the preformed prompts
agent_prompts = LazyLoadingDict(_get_prompts)


def create_prompt(prompt_template: str, prompt_name: str) -> None:
    """
    Adds a custom prompt template to the prompt dictionary.

    Raises:
        ValueError: if a prompt with this name already exists.
    """

    # the Literal is not checked at run time, which allows custom
    # names next to the preformed ones
    agent_prompts[prompt_name] = prompt_template  # type: ignore


def assistant_system_prompt(parameters: AgentSettings) -> str:
    """The system prompt of an assistant with these parameters."""
    if parameters.company_name:
        template = agent_prompts["assistant_company"]
    else:
        template = agent_prompts["assistant"]
    fields = parameters.model_dump()
    if parameters.company_description:
        fields["company_description"] = (
            f", {parameters.company_description}"
        )
    return template.format(**fields)
