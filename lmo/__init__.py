"""
lmo: orchestration of tool-calling conversations with language models.

The package is organized in three layers:

- config: settings objects, read from config.toml or given in code.
- language_models: the conversation thread, the tool registry, the
    semantic cache, the chat model backends and the agent loop.
- tools: ready-made tools that can be registered with a chat model.
"""
