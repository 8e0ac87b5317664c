"""Resolve the collaborator bundle for a configured backend."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Callable

from openai import OpenAI

from app.core.config import COLLABORATOR_BACKENDS, Settings

from .base import Collaborators
from .openai import (
    OpenAICategoryClassifier,
    OpenAIFeaturedChooser,
    OpenAIRanker,
    OpenAISelector,
    OpenAIWebSearchEnricher,
)
from .rules import (
    HeuristicSelector,
    KeywordCategoryClassifier,
    LargestTvlChooser,
    NullEnricher,
    TemplateRanker,
)


@lru_cache(maxsize=4)
def _cached_openai_client(
    api_key: str,
    base_url: str | None,
    organization: str | None,
    project: str | None,
    timeout: float,
    max_retries: int,
) -> OpenAI:
    kwargs: dict[str, Any] = {
        "api_key": api_key,
        "timeout": timeout,
        "max_retries": max_retries,
    }
    if base_url:
        kwargs["base_url"] = base_url
    if organization:
        kwargs["organization"] = organization
    if project:
        kwargs["project"] = project
    return OpenAI(**kwargs)


def openai_client(settings: Settings) -> OpenAI:
    """Build or reuse an OpenAI client bounded by the collaborator timeout and retry budget.

    The SDK retries twice by default; collaborator calls use
    ``collaborator_max_retries`` instead (0 unless configured), so a slow
    provider costs one timeout per stage before that stage falls back.
    """

    if not settings.openai_api_key:
        raise ValueError("OPENAI_API_KEY is not configured")
    base_url = str(settings.openai_api_base) if settings.openai_api_base else None
    return _cached_openai_client(
        settings.openai_api_key,
        base_url,
        settings.openai_org_id,
        settings.openai_project_id,
        settings.collaborator_timeout_seconds,
        settings.collaborator_max_retries,
    )


def _build_openai(settings: Settings, client: Any | None) -> Collaborators:
    client = client if client is not None else openai_client(settings)
    return Collaborators(
        classifier=OpenAICategoryClassifier(
            client,
            model=settings.openai_category_model,
            categories=settings.market_categories,
        ),
        selector=OpenAISelector(client, model=settings.openai_selector_model),
        enricher=OpenAIWebSearchEnricher(client, model=settings.openai_enrichment_model),
        ranker=OpenAIRanker(client, model=settings.openai_ranker_model),
        backend="openai",
        featured_chooser=OpenAIFeaturedChooser(
            client,
            model=settings.openai_featured_model,
            research_model=settings.openai_enrichment_model,
        ),
    )


def _build_rules(settings: Settings, client: Any | None) -> Collaborators:
    del client
    return Collaborators(
        classifier=KeywordCategoryClassifier(settings.market_categories),
        selector=HeuristicSelector(),
        enricher=NullEnricher(),
        ranker=TemplateRanker(),
        backend="rules",
        featured_chooser=LargestTvlChooser(),
    )


_BUILDERS: dict[str, Callable[[Settings, Any | None], Collaborators]] = {
    "openai": _build_openai,
    "rules": _build_rules,
}


def build_collaborators(
    settings: Settings,
    backend: str | None = None,
    *,
    client: Any | None = None,
) -> Collaborators:
    """Return the collaborator bundle for ``backend`` (defaults to the configured one)."""

    name = (backend or settings.collaborator_backend).strip().lower()
    builder = _BUILDERS.get(name)
    if builder is None:
        raise ValueError(
            f"Unknown collaborator backend '{name}'. Expected one of: {', '.join(COLLABORATOR_BACKENDS)}"
        )
    return builder(settings, client)


__all__ = ["build_collaborators", "openai_client"]
