"""
LangChain backend: chat models and embeddings created from settings,
and the chat model adapter.
"""

# pyright: reportUnusedImport=false
# flake8: noqa

from .adapter import LangChainChatModel, to_langchain_messages
from .models import (
    create_model_from_settings,
    create_embedding_model_from_settings,
    create_embedding_model_from_spec,
    langchain_models,
    langchain_embeddings,
)
