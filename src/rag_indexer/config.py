"""Settings loaded from environment / ``.env`` and their pre-flight validation."""

from __future__ import annotations

from pydantic import AnyHttpUrl, Field, TypeAdapter, ValidationError
from pydantic_settings import BaseSettings

from rag_indexer.errors import ConfigurationError

# Variables that must be present and non-blank before any pipeline stage runs.
REQUIRED_VARS: dict[str, str] = {
    "OPENAI_API_KEY": "openai_api_key",
    "OPENAI_MODEL_NAME": "openai_model_name",
    "OPENAI_EMBEDDING_MODEL": "openai_embedding_model",
}

_URL_ADAPTER = TypeAdapter(AnyHttpUrl)


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # OpenAI
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openai_model_name: str = Field(default="", description="Chat model identifier, e.g. gpt-4o-mini")
    openai_embedding_model: str = Field(
        default="", description="Embedding model identifier, e.g. text-embedding-3-small"
    )
    openai_base_url: str = Field(
        default="",
        description="Base URL of an OpenAI-compatible API. Leave empty to use OpenAI cloud.",
    )

    # Vector store
    chroma_url: str = "http://localhost:8000"
    chroma_collection: str = "rag_documents"
    distance_metric: str = Field(default="cosine", description="cosine | l2 | ip")

    # Ingestion
    documents_dir: str = "rag_docs"
    chunk_size: int = 1000
    chunk_overlap: int = 200
    embed_batch_size: int = Field(default=100, gt=0)
    embed_max_concurrency: int = Field(default=1, gt=0)

    # Runtime
    app_env: str = "development"
    log_level: str = Field(default="", description="Overrides the env-derived log level")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"


def validate_settings(settings: Settings) -> Settings:
    """Reject blank required values and a malformed ``CHROMA_URL``.

    Every missing variable is reported at once so the operator can fix
    the ``.env`` file in a single pass.
    """
    missing = [
        env_name
        for env_name, attr in REQUIRED_VARS.items()
        if not getattr(settings, attr).strip()
    ]
    if missing:
        raise ConfigurationError(
            "Missing or empty required environment variables: " + ", ".join(missing),
            missing=missing,
        )

    try:
        _URL_ADAPTER.validate_python(settings.chroma_url)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid CHROMA_URL format: {settings.chroma_url!r} "
            "(expected e.g. http://localhost:8000)"
        ) from exc

    if settings.openai_base_url:
        try:
            _URL_ADAPTER.validate_python(settings.openai_base_url)
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid OPENAI_BASE_URL format: {settings.openai_base_url!r}"
            ) from exc

    if settings.distance_metric not in ("cosine", "l2", "ip"):
        raise ConfigurationError(
            f"Unsupported DISTANCE_METRIC={settings.distance_metric!r}. Choose from: cosine, l2, ip."
        )

    return settings


def load_settings(**overrides: object) -> Settings:
    """Build and validate :class:`Settings`.

    Type errors raised by pydantic (e.g. ``CHUNK_SIZE=abc``) surface as
    :class:`ConfigurationError` like every other configuration problem.
    """
    try:
        settings = Settings(**overrides)
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]).upper() for err in exc.errors() if err["loc"]})
        raise ConfigurationError(
            "Invalid configuration values: " + ", ".join(fields), missing=fields
        ) from exc
    return validate_settings(settings)
