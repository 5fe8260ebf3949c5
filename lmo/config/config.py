"""
Read and write configuration file.

This file also contains the definitions of the model sources supported
in the package. Settings objects are passed explicitly to the objects
that use them (chat models, caches, agents); they are only read from
config.toml or from the environment when a `Settings` object is
created.
"""

from pathlib import Path
from typing import Any, Literal, Self

from pydantic import (
    Field,
    SecretStr,
    field_validator,
    model_validator,
    BaseModel,
)
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

# Define supported models. These sources must also be handled by
# create_chat_model in lmo.language_models.factory
ModelSource = Literal[
    'OpenAI', 'LocalAI', 'Anthropic', 'Mistral', 'Gemini', 'Debug'
]
EmbeddingSource = Literal[
    'OpenAI', 'Mistral', 'Gemini', 'SentenceTransformers', 'Debug'
]
ResponseFormat = Literal['text', 'json_object']
ReasoningEffort = Literal['minimal', 'low', 'medium', 'high']

# values allowed in provider_params
ParamPrimitive = str | int | bool | float

# Constants for better maintainability
DEFAULT_CONFIG_FILE = "config.toml"
ENV_PREFIX = "LMO_"


def _validate_source_spec(spec: str, sources: tuple[str, ...]) -> str:
    cleaned_spec = spec.strip()
    if not (bool(cleaned_spec)):
        raise ValueError("Model specification is empty")
    if '\n' in cleaned_spec or '\r' in cleaned_spec:
        raise ValueError(
            "Model specification cannot contain newlines or carriage"
            + " returns."
        )
    tokens = cleaned_spec.split('/', 1)
    if len(tokens) != 2 or not tokens[1].strip():
        raise ValueError(
            "Model specification must contain the model provider and "
            + "the model name separated by '/'.",
        )
    model_spec = tokens[0].strip()
    if model_spec not in sources:
        raise ValueError(
            f"Invalid model provider: '{model_spec}'. "
            + f"Must be one of {sources}."
        )
    return model_spec + '/' + tokens[1].strip()


class LanguageModelSettings(BaseModel):
    """
    Specification of language sources and models.

    Numeric generation parameters left to None (or zero) are not sent
    to the provider, so that the provider default applies.

    Attributes:
        model: model specification, 'source/model'
        temperature: float between 0.0 and 2.0
        max_tokens: max number of generated tokens
        max_completion_tokens: max number of completion tokens
        reasoning_effort: reasoning effort for reasoning models
        stop: stop sequences
        response_format: response format constraint
        tool_choice: None (tools disabled), 'auto', or a tool name
        max_retries: max number retries attempts
        timeout: timeout when waiting for response
        base_url: endpoint for OpenAI-compatible servers
        api_key: provider key
        provider_params: provider-specific parameters
    """

    # Required
    model: str = Field(
        description="Model specification in the form "
        + "'model_provider/model' (e.g., 'OpenAI/gpt-4o')"
    )

    # Generation parameters
    temperature: float | None = Field(
        default=None,
        ge=0.0,
        le=2.0,
        description="Controls randomness in model responses (0.0-2.0)",
    )
    max_tokens: int | None = Field(
        default=None,
        ge=0,
        description="Maximum number of tokens to generate",
    )
    max_completion_tokens: int | None = Field(
        default=None,
        ge=0,
        description="Maximum number of completion tokens",
    )
    reasoning_effort: ReasoningEffort | None = None
    stop: tuple[str, ...] = Field(
        default=(), description="Stop sequences"
    )
    response_format: ResponseFormat | None = None
    tool_choice: str | None = Field(
        default=None,
        description="None disables tool calls, 'auto' lets the model "
        + "choose, any other value forces the named tool",
    )

    # Connection
    max_retries: int = Field(
        default=2,
        ge=0,
        description="Maximum number of retry attempts",
    )
    timeout: float | None = Field(
        default=None, gt=0, description="Request timeout in seconds"
    )
    base_url: str | None = Field(
        default=None,
        description="Endpoint of an OpenAI-compatible server",
    )
    api_key: SecretStr | None = None

    # Provider-specific parameters
    provider_params: dict[str, ParamPrimitive] = Field(
        default_factory=dict,
        description="Provider-specific parameters (e.g., frequency_penalty for OpenAI)",
    )

    model_config = SettingsConfigDict(frozen=True, extra='forbid')

    def __hash__(self) -> int:
        """Make the object hashable by converting provider_params to a sorted tuple."""
        provider_params_tuple = tuple(
            sorted(self.provider_params.items())
        )
        return hash(
            (
                self.model,
                self.temperature,
                self.max_tokens,
                self.max_completion_tokens,
                self.reasoning_effort,
                self.stop,
                self.response_format,
                self.tool_choice,
                self.max_retries,
                self.timeout,
                self.base_url,
                self.api_key,
                provider_params_tuple,
            )
        )

    def get_model_source(self) -> ModelSource:
        return self.model.split('/', 1)[0]  # type: ignore

    def get_model_name(self) -> str:
        return self.model.split('/', 1)[1]

    def get_api_key(self) -> str | None:
        if self.api_key is None:
            return None
        return self.api_key.get_secret_value()

    # A method to create a new instance with some fields modified
    def from_instance(self, **changes: Any) -> 'LanguageModelSettings':
        data = self.model_dump()
        data.update(changes)
        return LanguageModelSettings(**data)

    @field_validator('model', mode='after')
    @classmethod
    def validate_model_spec(cls, spec: str) -> str:
        return _validate_source_spec(spec, ModelSource.__args__)

    @model_validator(mode='after')
    def validate_provider_params(self) -> Self:
        """Validate provider-specific parameters based on the source."""
        params = self.provider_params

        ALLOWED_PARAMS = {
            'OpenAI': {
                'frequency_penalty',
                'presence_penalty',
                'top_p',
                'seed',
                'logprobs',
                'top_logprobs',
            },
            'Anthropic': {'top_p', 'top_k'},
            'Mistral': {'top_p', 'random_seed', 'safe_mode'},
            'Gemini': {'top_p', 'top_k', 'candidate_count'},
        }

        source: ModelSource = self.get_model_source()
        if source in ALLOWED_PARAMS:
            allowed = ALLOWED_PARAMS[source]
            invalid_params = set(params.keys()) - allowed

            if invalid_params:
                raise ValueError(
                    f"Invalid provider_params for {source}: {invalid_params}. Allowed: {allowed}"
                )

        if source == 'LocalAI' and not self.base_url:
            raise ValueError("LocalAI models require a base_url")
        return self


class EmbeddingSettings(BaseModel):
    """
    Specification of embeddings object.

    Attributes:
        dense_model: embedding model specification
    """

    dense_model: str = Field(
        description="Model specification in the form "
        + "'model_provider/model' (e.g., 'OpenAI/text-embedding-3-small')"
    )

    model_config = SettingsConfigDict(frozen=True, extra='forbid')

    def get_model_source(self) -> EmbeddingSource:
        return self.dense_model.split('/', 1)[0]  # type: ignore

    def get_model_name(self) -> str:
        return self.dense_model.split('/', 1)[1]

    @field_validator('dense_model', mode='after')
    @classmethod
    def validate_model_spec(cls, spec: str) -> str:
        return _validate_source_spec(spec, EmbeddingSource.__args__)


class CacheSettings(BaseModel):
    """
    Specification of the semantic cache.

    Attributes:
        embeddings: the embedding model used to embed queries
        score_threshold: minimum cosine similarity for a hit
        top_k: number of candidate entries considered
    """

    embeddings: EmbeddingSettings = Field(
        default_factory=lambda: EmbeddingSettings(
            dense_model="OpenAI/text-embedding-3-small"
        ),
    )
    score_threshold: float = Field(default=0.9, ge=0.0, le=1.0)
    top_k: int = Field(default=1, ge=1)

    model_config = SettingsConfigDict(frozen=True, extra='forbid')


class AgentSettings(BaseModel):
    """
    Specification of the agent loop and of the assistant identity
    used to build its system prompt.
    """

    max_iterations: int = Field(default=10, ge=1)
    name: str = "AI assistant"
    identity: str = "a helpful assistant"
    scope: str = "with their questions"
    company_name: str = ""
    company_description: str = ""

    model_config = SettingsConfigDict(frozen=True, extra='forbid')


class Settings(BaseSettings):
    """
    A pydantic settings object containing the fields with the
    configuration information.

    Settings are saved and read from the configuration file in TOML
    format, and may be overridden by environment variables with the
    LMO_ prefix (nested fields use '__', e.g. LMO_MAJOR__MODEL).

    Attributes:
        major: primary language model
        minor: secondary language model for simple tasks
        cache: semantic cache configuration
        agent: agent loop configuration
    """

    major: LanguageModelSettings = Field(
        default_factory=lambda: LanguageModelSettings(
            model="OpenAI/gpt-4o-mini",
        ),
        description="Primary language model",
    )
    minor: LanguageModelSettings = Field(
        default_factory=lambda: LanguageModelSettings(
            model="OpenAI/gpt-4.1-nano",
        ),
        description="Secondary language model for simple tasks",
    )
    cache: CacheSettings = Field(
        default_factory=CacheSettings,
        description="Semantic cache configuration",
    )
    agent: AgentSettings = Field(
        default_factory=AgentSettings,
        description="Agent loop configuration",
    )

    model_config = SettingsConfigDict(
        toml_file=DEFAULT_CONFIG_FILE,
        env_prefix=ENV_PREFIX,
        env_nested_delimiter='__',
        frozen=True,
        validate_assignment=True,
        extra='allow',
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize the order of settings sources."""
        return (
            init_settings,
            TomlConfigSettingsSource(settings_cls),
            env_settings,
        )

    def __str__(self) -> str:
        return serialize_settings(self)


def _to_toml_value(value: Any) -> Any:
    # TOML has no null: drop None values at any depth
    if isinstance(value, dict):
        return {
            k: _to_toml_value(v)
            for k, v in value.items()  # type: ignore
            if v is not None
        }
    if isinstance(value, tuple):
        return list(value)  # type: ignore
    return value


def serialize_settings(sets: BaseSettings) -> str:
    """Transform the settings into a string in TOML format.

    Secrets are not written out.

    Args:
        sets: The settings object to serialize

    Returns:
        TOML formatted string representation of settings
    """
    import tomlkit

    doc = tomlkit.document()
    doc.add(tomlkit.comment("Configuration file"))
    doc.add(tomlkit.nl())

    data: dict[str, Any] = sets.model_dump(exclude={'major': {'api_key'}, 'minor': {'api_key'}})
    for key, value in data.items():
        if value is None:
            continue
        doc[key] = _to_toml_value(value)

    return str(tomlkit.dumps(doc))  # type: ignore


def export_settings(
    settings: BaseSettings, file_path: str | Path | None = None
) -> None:
    """Save settings to file in TOML format.

    Args:
        settings: A settings object to save
        file_path: The settings file path (defaults to config.toml)

    Raises:
        OSError: If file cannot be written
    """
    if file_path is None:
        file_path = DEFAULT_CONFIG_FILE

    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    with file_path.open("w", encoding="utf-8") as f:
        f.write(serialize_settings(settings))


def create_default_config_file(
    file_path: str | Path | None = None,
) -> None:
    """Create a default settings file, replacing any existing one.

    Args:
        file_path: Target file path (defaults to config.toml)

    Example:
        ```python
        create_default_config_file(file_path="custom_config.toml")
        ```
    """
    if file_path is None:
        file_path = DEFAULT_CONFIG_FILE

    file_path = Path(file_path)

    if file_path.exists():
        # otherwise, it will be read in
        file_path.unlink()

    export_settings(Settings(), file_path)


def load_settings(file_path: str | Path | None = None) -> Settings:
    """Load settings from TOML file.

    Args:
        file_path: Path to settings file (defaults to config.toml)

    Returns:
        Loaded settings object

    Raises:
        FileNotFoundError: If settings file doesn't exist
        ValueError: If settings file is invalid
    """
    if file_path is None:
        file_path = DEFAULT_CONFIG_FILE

    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(
            f"Settings file not found: {file_path}"
        )

    try:
        # Create a temporary settings class with the specified file
        class TempSettings(Settings):
            model_config = SettingsConfigDict(
                toml_file=str(file_path),
                env_prefix=ENV_PREFIX,
                env_nested_delimiter='__',
                frozen=True,
                validate_assignment=True,
                extra='allow',
            )

        return TempSettings()
    except Exception as e:
        raise ValueError(
            f"Failed to load settings from {file_path}: "
            + format_pydantic_error_message(str(e))
        ) from e


def format_pydantic_error_message(error_message: str) -> str:
    """Filter out verbose lines from pydantic error messages.

    Args:
        error_message: Raw pydantic error message

    Returns:
        Cleaned error message without verbose help text
    """
    lines = error_message.split('\n')
    filtered_lines = [
        line
        for line in lines
        if "For further information visit" not in line
    ]
    return '\n'.join(filtered_lines)
