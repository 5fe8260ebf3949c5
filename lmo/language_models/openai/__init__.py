""" Chat models for the OpenAI chat completions API and for
OpenAI-compatible servers. """

# pyright: reportUnusedImport=false
# flake8: noqa

from .chat import (
    OpenAIChatModel,
    LocalAIChatModel,
    openai_clients,
    to_openai_messages,
)
