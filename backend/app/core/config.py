from functools import lru_cache
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

COLLABORATOR_BACKENDS = ("openai", "rules")

FEATURED_SELECTION_METHODS = ("direct", "sqrt", "rank", "power", "ai")

DEFAULT_MARKET_CATEGORIES = [
    "Crypto",
    "Politics",
    "Sports",
    "Entertainment",
    "Technology",
    "Finance",
    "Other",
]


def _ensure_sqlalchemy_postgres_scheme(value: str) -> str:
    if not value.lower().startswith("postgres"):
        return value

    parsed = urlparse(value)
    scheme = parsed.scheme.lower()

    if scheme == "postgres":
        scheme = "postgresql"

    if scheme == "postgresql":
        scheme = "postgresql+psycopg"

    if scheme not in {"postgresql+psycopg", "postgresql+asyncpg"}:
        scheme = "postgresql+psycopg"

    query_params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query_params.setdefault("sslmode", "require")
    query_params.setdefault("target_session_attrs", "read-write")
    new_query = urlencode(query_params, doseq=True)

    normalized = urlunparse(
        parsed._replace(
            scheme=scheme,
            query=new_query,
        )
    )
    return normalized


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Echo SQL statements and enable verbose output")
    database_url: AnyUrl | str = Field(
        default="sqlite:///../data/newsdesk.db",
        description="SQLAlchemy compatible database URL for snapshots and the news queue",
    )
    registry_base_url: AnyUrl = Field(
        default="http://localhost:8080",
        description="Base URL of the market registry serving market details",
    )
    registry_markets_path: str = Field(
        default="/markets",
        description="Relative path of the registry markets endpoint",
    )
    registry_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout applied to every registry request",
        gt=0,
    )
    price_change_threshold: float = Field(
        default=0.20,
        description="Relative yes-price move (0-1) that counts as a newsworthy price change",
    )
    max_new_events: int = Field(
        default=5,
        description="Maximum number of raw events kept by the pre-filter before enrichment",
        ge=1,
    )
    max_news_posts: int = Field(
        default=5,
        description="Number of top ranked events written to the news queue per run",
        ge=1,
    )
    news_queue_capacity: int = Field(
        default=1000,
        description="Maximum length of the news queue; older entries are trimmed",
        ge=1,
    )
    enrichment_concurrency: int = Field(
        default=3,
        description="Number of contextual-search calls allowed in flight at once",
        ge=1,
    )
    enrichment_delay_seconds: float = Field(
        default=0.0,
        description="Pause after each contextual-search call to respect provider rate limits",
        ge=0,
    )
    collaborator_backend: str = Field(
        default="openai",
        description="Backend used for classification, selection, enrichment and ranking (openai|rules)",
    )
    collaborator_timeout_seconds: float = Field(
        default=120.0,
        description="Timeout applied to each AI collaborator request",
        gt=0,
    )
    collaborator_max_retries: int = Field(
        default=0,
        description="Client-level retries per AI request (0 disables retries)",
        ge=0,
    )
    openai_api_key: str | None = Field(
        default=None,
        description="API key used for OpenAI-backed collaborators",
    )
    openai_api_base: AnyUrl | str | None = Field(
        default=None,
        description="Optional override for the OpenAI API base URL (Azure/proxy support)",
    )
    openai_org_id: str | None = Field(
        default=None,
        description="Optional OpenAI organization identifier",
    )
    openai_project_id: str | None = Field(
        default=None,
        description="Optional OpenAI project identifier for usage scoping",
    )
    openai_category_model: str = Field(default="gpt-4o-mini")
    openai_selector_model: str = Field(default="gpt-4o")
    openai_enrichment_model: str = Field(default="gpt-4.1")
    openai_ranker_model: str = Field(default="gpt-4o")
    openai_featured_model: str = Field(default="gpt-4o-mini")
    market_categories: list[str] | str = Field(
        default_factory=lambda: list(DEFAULT_MARKET_CATEGORIES),
        description="Allowed category labels; comma-separated string or list",
    )
    featured_selection_method: str = Field(
        default="direct",
        description="How the featured market is drawn (direct|sqrt|rank|power|ai)",
    )
    featured_min_tvl: float = Field(
        default=200.0,
        description="Markets below this TVL are never featured",
        ge=0,
    )
    featured_tvl_power: float = Field(
        default=2.0,
        description="Exponent applied to TVL by the power selection method",
        gt=0,
    )
    featured_exclude_recent: int = Field(
        default=1,
        description="Number of most recently featured markets that cannot be picked again",
        ge=0,
    )
    featured_ai_candidates: int = Field(
        default=4,
        description="Candidates drawn by TVL before the AI method picks one",
        ge=1,
    )

    @field_validator("price_change_threshold")
    @classmethod
    def _validate_threshold(cls, value: float) -> float:
        if not 0 < value <= 1:
            raise ValueError("PRICE_CHANGE_THRESHOLD must be within (0, 1]")
        return value

    @field_validator("collaborator_backend")
    @classmethod
    def _validate_backend(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in COLLABORATOR_BACKENDS:
            raise ValueError(
                f"COLLABORATOR_BACKEND must be one of {', '.join(COLLABORATOR_BACKENDS)}"
            )
        return normalized

    @field_validator("featured_selection_method")
    @classmethod
    def _validate_featured_method(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in FEATURED_SELECTION_METHODS:
            raise ValueError(
                f"FEATURED_SELECTION_METHOD must be one of {', '.join(FEATURED_SELECTION_METHODS)}"
            )
        return normalized

    @field_validator("market_categories", mode="after")
    @classmethod
    def _parse_categories(cls, value: Any) -> list[str]:
        if value in (None, "", []):
            return list(DEFAULT_MARKET_CATEGORIES)
        if isinstance(value, str):
            items = [part.strip() for part in value.split(",") if part.strip()]
        elif isinstance(value, (list, tuple, set)):
            items = [str(item).strip() for item in value if str(item).strip()]
        else:
            raise ValueError(
                "MARKET_CATEGORIES must be provided as a list or comma-separated string"
            )
        if "Other" not in items:
            items.append("Other")
        return items

    @field_validator("database_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if value is None or not isinstance(value, str):
            return value

        if value.startswith("postgresql+psycopg://") or value.startswith(
            "postgresql+asyncpg://"
        ):
            return value

        normalized = value
        if normalized.startswith("postgres://"):
            normalized = "postgresql://" + normalized[len("postgres://") :]

        return normalized

    @property
    def resolved_database_url(self) -> str:
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))


@lru_cache
def get_settings() -> Settings:
    return Settings()
