"""
This module creates the LangChain model objects used by the LangChain
chat backend and by the semantic cache. The objects are created from
settings objects, and memoized in two repositories, langchain_models
and langchain_embeddings.

Examples:

```python
from lmo.config import LanguageModelSettings, EmbeddingSettings
from lmo.language_models.langchain.models import (
    create_model_from_settings,
    create_embedding_model_from_settings,
)

model = create_model_from_settings(
    LanguageModelSettings(model="Anthropic/claude-3-5-haiku-latest")
)
embeddings = create_embedding_model_from_settings(
    EmbeddingSettings(dense_model="OpenAI/text-embedding-3-small")
)
```

The 'Debug' source creates fake objects from langchain_core, which
do not call any provider: a chat model replying "Message 1",
"Message 2", ... (or the constant provider_params["message"]), and
deterministic embeddings that are equal for equal texts.

Behaviour:
    Raises exception from Langchain and from itself

Note:
    Support for new model sources should be added here by extending
    the match ... case statement in _create_model_instance.
"""

from typing import Any

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.embeddings import Embeddings

from lmo.config.config import (
    LanguageModelSettings,
    EmbeddingSettings,
    ModelSource,
)

from ..lazy_dict import LazyLoadingDict

# size of the embeddings of the Debug source
DEBUG_EMBEDDING_SIZE = 64


def _create_model_instance(
    model: LanguageModelSettings,
) -> BaseChatModel:
    """
    Factory function to create Langchain models while checking
    permissible sources.
    """
    model_source: ModelSource = model.get_model_source()
    model_name: str = model.get_model_name()

    # generation parameters common to all providers. Zero or unset
    # values are left out, so that the provider default applies.
    kwargs: dict[str, Any] = {}
    if model.temperature:
        kwargs["temperature"] = model.temperature
    if model.stop:
        kwargs["stop"] = list(model.stop)

    match model_source:
        case "Anthropic":
            try:
                from langchain_anthropic.chat_models import (
                    ChatAnthropic,
                )
            except ImportError as e:
                raise ImportError(
                    "Anthropic models require the "
                    "'langchain-anthropic' package. "
                    "Install it with: pip install langchain-anthropic"
                ) from e

            kwargs.update(
                {
                    "model_name": model_name,
                    "max_tokens_to_sample": model.max_tokens or 1024,
                    "timeout": model.timeout,
                    "max_retries": model.max_retries,
                }
            )
            if model.api_key is not None:
                kwargs["api_key"] = model.api_key
            kwargs.update(model.provider_params)
            return ChatAnthropic(**kwargs)

        case "Gemini":
            try:
                from langchain_google_genai import (
                    ChatGoogleGenerativeAI,
                )
            except ImportError as e:
                raise ImportError(
                    "Gemini models require the "
                    "'langchain-google-genai' package. "
                    "Install it with: pip install "
                    "langchain-google-genai"
                ) from e

            kwargs["model"] = model_name
            if model.max_tokens:
                kwargs["max_output_tokens"] = model.max_tokens
            if model.timeout is not None:
                kwargs["request_timeout"] = model.timeout
            if model.api_key is not None:
                kwargs["google_api_key"] = model.api_key
            kwargs.update(model.provider_params)
            return ChatGoogleGenerativeAI(**kwargs)

        case "Mistral":
            try:
                from langchain_mistralai.chat_models import (
                    ChatMistralAI,
                )
            except ImportError as e:
                raise ImportError(
                    "Mistral models require the 'langchain-mistralai'"
                    " package. Install it with: pip install "
                    "langchain-mistralai"
                ) from e

            kwargs["model_name"] = model_name
            kwargs["max_retries"] = model.max_retries
            if model.max_tokens:
                kwargs["max_tokens"] = model.max_tokens
            if model.timeout is not None:
                kwargs["timeout"] = int(model.timeout)
            if model.api_key is not None:
                kwargs["api_key"] = model.api_key
            kwargs.update(model.provider_params)
            return ChatMistralAI(**kwargs)

        case "OpenAI" | "LocalAI":
            try:
                from langchain_openai.chat_models import ChatOpenAI
            except ImportError as e:
                raise ImportError(
                    "OpenAI models require the 'langchain-openai'"
                    " package. Install it with: pip install "
                    "langchain-openai"
                ) from e

            kwargs["model"] = model_name
            kwargs["max_retries"] = model.max_retries
            kwargs["use_responses_api"] = False
            if model.max_tokens:
                kwargs["max_tokens"] = model.max_tokens
            if model.timeout is not None:
                kwargs["timeout"] = model.timeout
            if model.base_url is not None:
                kwargs["base_url"] = model.base_url
            if model.api_key is not None:
                kwargs["api_key"] = model.api_key
            kwargs.update(model.provider_params)
            return ChatOpenAI(**kwargs)

        case "Debug":
            from langchain_core.language_models.fake_chat_models import (
                GenericFakeChatModel,
            )

            from .message_iterator import (
                yield_message,
                yield_constant_message,
            )

            if "message" in model.provider_params:
                return GenericFakeChatModel(
                    name="Langchain fake messages",
                    messages=yield_constant_message(
                        str(model.provider_params["message"])
                    ),
                )
            return GenericFakeChatModel(
                name="Langchain fake chat",
                messages=yield_message(),
            )

        case _:
            raise ValueError(
                f"Unreachable code reached: invalid source {model_source}"
            )


def _create_embedding_instance(
    model: EmbeddingSettings,
) -> Embeddings:
    """
    Factory function to create Langchain embeddings while checking
    permissible sources.
    """
    model_source: str = model.get_model_source()
    model_name: str = model.get_model_name()
    match model_source:
        case "Gemini":
            try:
                from langchain_google_genai import (
                    GoogleGenerativeAIEmbeddings,
                )
            except ImportError as e:
                raise ImportError(
                    "Gemini models require the "
                    "'langchain-google-genai' package. "
                    "Install it with: pip install langchain-google-genai"
                ) from e

            return GoogleGenerativeAIEmbeddings(
                model=model_name,
                task_type="semantic_similarity",
            )

        case "Mistral":
            try:
                from langchain_mistralai import MistralAIEmbeddings
            except ImportError as e:
                raise ImportError(
                    "Mistral models require the "
                    "'langchain-mistralai' package. "
                    "Install it with: pip install langchain-mistralai"
                ) from e

            return MistralAIEmbeddings(model=model_name)

        case "OpenAI":
            try:
                from langchain_openai import OpenAIEmbeddings
            except ImportError as e:
                raise ImportError(
                    "OpenAI models require the 'langchain-openai'"
                    " package. Install it with: pip install "
                    "langchain-openai"
                ) from e

            return OpenAIEmbeddings(model=model_name)

        case "SentenceTransformers":
            try:
                from langchain_huggingface import HuggingFaceEmbeddings
            except ImportError as e:
                raise ImportError(
                    "SentenceTransformers models require the "
                    "'langchain-huggingface' package. "
                    "Install it with: pip install langchain-huggingface"
                ) from e

            return HuggingFaceEmbeddings(
                model_name=f"sentence-transformers/{model_name}",
                encode_kwargs={"normalize_embeddings": True},
            )

        case "Debug":
            from langchain_core.embeddings import (
                DeterministicFakeEmbedding,
            )

            return DeterministicFakeEmbedding(size=DEBUG_EMBEDDING_SIZE)

        case _:
            raise ValueError(
                f"Unreachable code reached: invalid source {model_source}"
            )


# Public interface----------------------------------------------
langchain_models: LazyLoadingDict[LanguageModelSettings, BaseChatModel] = \
    LazyLoadingDict(_create_model_instance)
langchain_embeddings: LazyLoadingDict[EmbeddingSettings, Embeddings] = \
    LazyLoadingDict(_create_embedding_instance)


def create_model_from_settings(
    settings: LanguageModelSettings,
) -> BaseChatModel:
    """
    Create langchain model from a LanguageModelSettings object.

    Raises:
        ValueError: if the source is not supported.
        ImportError: if the provider package is not installed.
    """
    return langchain_models[settings]


def create_embedding_model_from_settings(
    settings: EmbeddingSettings,
) -> Embeddings:
    """
    Create langchain embedding model from an EmbeddingSettings
    object.

    Raises:
        ValueError: if the source is not supported.
        ImportError: if the provider package is not installed.
    """
    return langchain_embeddings[settings]


def create_embedding_model_from_spec(dense_model: str) -> Embeddings:
    """
    Create langchain embedding model from a specification in the form
    source/model, such as 'OpenAI/text-embedding-3-small'.

    Example:
        ```python
        embeddings = create_embedding_model_from_spec("Debug/fake")
        ```
    """
    return langchain_embeddings[EmbeddingSettings(dense_model=dense_model)]
