"""
Selection of the chat model backend from the model source of the
settings.

    OpenAI   -> OpenAIChatModel (openai SDK)
    LocalAI  -> LocalAIChatModel (openai SDK on the base_url)
    others   -> LangChainChatModel

Example:
    ```python
    from lmo.config import load_settings
    from lmo.language_models import create_chat_model

    settings = load_settings()
    model = create_chat_model(settings.major, tools=[get_weather])
    ```
"""

from typing import Any

from lmo.config.config import LanguageModelSettings

from .base import BaseChatModel


def create_chat_model(
    settings: LanguageModelSettings, **kwargs: Any
) -> BaseChatModel:
    """
    Create a chat model from settings. The keyword arguments are
    passed to the backend constructor (tools, cache, stream_callback,
    usage_callback, name, logger).
    """
    match settings.get_model_source():
        case "OpenAI":
            from .openai import OpenAIChatModel

            return OpenAIChatModel(settings, **kwargs)
        case "LocalAI":
            from .openai import LocalAIChatModel

            return LocalAIChatModel(settings, **kwargs)
        case "Anthropic" | "Mistral" | "Gemini" | "Debug":
            from .langchain import LangChainChatModel

            return LangChainChatModel(settings, **kwargs)
        case _:
            raise ValueError(
                f"Invalid model source: {settings.get_model_source()}"
            )
