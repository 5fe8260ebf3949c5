"""
Orchestration of chat models: conversation threads, tools, the
semantic cache, observation hooks, chat model backends and the agent
loop.
"""

# pyright: reportUnusedImport=false
# flake8: noqa

from .thread import (
    Role,
    TextContent,
    ImageContent,
    ToolCallContent,
    ToolResponseContent,
    Message,
    Thread,
    system_message,
    user_message,
    assistant_message,
    tool_call_message,
    tool_response_message,
)
from .tools import Tool, ToolRegistry, tool
from .cache import BaseCache, CacheResult, SemanticCache
from .observer import (
    Generation,
    LLMObserver,
    LoggerObserver,
    observe,
)
from .errors import (
    ChatModelError,
    ProtocolError,
    ProviderError,
    ObserverError,
    GenerationCancelledError,
    CacheError,
    CacheMissError,
    ToolError,
    ToolArgumentsError,
)
from .wire import TokensUsage
from .base import BaseChatModel, EOS
from .agent import Agent, AgentState
from .factory import create_chat_model
