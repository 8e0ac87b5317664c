"""OpenAI Responses API implementations of the AI collaborators."""

from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

from loguru import logger
from openai import OpenAIError

from app.domain import (
    EnrichedEvent,
    MarketSnapshot,
    NewMarketEvent,
    NewsEvent,
    PriceChangeEvent,
    StatusChangeEvent,
)

from .base import CollaboratorError, Enrichment, FeaturedChoice, RankingEntry


def describe_event(event: NewsEvent) -> str:
    """Render a one-line summary of the event for prompts."""

    details = f'{event.event_type} - "{event.market_question}" (Category: {event.category or "Other"})'
    if isinstance(event, PriceChangeEvent):
        details += (
            f" - Price moved {event.direction} by {event.percent_change:.2f}%"
            f" ({event.previous_price} -> {event.new_price})"
        )
    elif isinstance(event, StatusChangeEvent):
        details += (
            f" - Status changed from {event.previous_status} to {event.new_status}"
            f" ({event.status_text})"
        )
    elif isinstance(event, NewMarketEvent):
        details += f" - Initial yes price: {event.initial_yes_price}, TVL: {event.tvl}"
    return details


def _validate_required_fields(schema_name: str, schema: Mapping[str, Any]) -> None:
    """Structured outputs reject objects whose properties are not all required."""

    if schema.get("type") == "object":
        properties = schema.get("properties") or {}
        missing = sorted(set(properties) - set(schema.get("required") or ()))
        if missing:
            raise ValueError(
                f"Schema {schema_name} must list every property as required; missing {missing}"
            )
        for child in properties.values():
            if isinstance(child, Mapping):
                _validate_required_fields(schema_name, child)
    elif schema.get("type") == "array" and isinstance(schema.get("items"), Mapping):
        _validate_required_fields(schema_name, schema["items"])


def extract_output_text(response: Any) -> str:
    output_text = getattr(response, "output_text", None)
    if isinstance(output_text, str) and output_text.strip():
        return output_text
    dump: Mapping[str, Any]
    if hasattr(response, "model_dump"):
        dump = response.model_dump()
    elif isinstance(response, Mapping):
        dump = response
    else:
        dump = {}
    for item in dump.get("output", None) or []:
        for content in item.get("content", None) or []:
            if isinstance(content, dict):
                text = content.get("text") or content.get("output_text")
                if isinstance(text, str) and text.strip():
                    return text
    raise CollaboratorError("LLM response did not include any output text")


def extract_json(response: Any) -> Mapping[str, Any]:
    text_candidate = extract_output_text(response)
    try:
        payload = json.loads(text_candidate)
    except json.JSONDecodeError as exc:
        raise CollaboratorError("Failed to decode JSON payload from LLM response") from exc
    if not isinstance(payload, Mapping):
        raise CollaboratorError("LLM response JSON was not an object")
    return payload


def extract_citations(response: Any) -> tuple[str, ...]:
    """Collect unique URL citations attached to the response's message content."""

    if not hasattr(response, "model_dump"):
        return ()
    urls: list[str] = []
    for item in response.model_dump().get("output", None) or []:
        for content in item.get("content", None) or []:
            if not isinstance(content, dict):
                continue
            for annotation in content.get("annotations", None) or []:
                url = annotation.get("url") if isinstance(annotation, dict) else None
                if isinstance(url, str) and url and url not in urls:
                    urls.append(url)
    return tuple(urls)


class _OpenAICollaborator:
    """Shared request plumbing for the Responses API collaborators."""

    stage: str = "collaborator"

    def __init__(self, client: Any, *, model: str) -> None:
        self.client = client
        self.model = model

    def _create(self, *, input_text: str, model: str | None = None, **kwargs: Any) -> Any:
        try:
            return self.client.responses.create(model=model or self.model, input=input_text, **kwargs)
        except OpenAIError as exc:
            raise CollaboratorError(f"OpenAI {self.stage} request failed: {exc}") from exc

    def _structured(
        self,
        *,
        input_text: str,
        schema_name: str,
        schema: Mapping[str, Any],
        **kwargs: Any,
    ) -> Mapping[str, Any]:
        _validate_required_fields(schema_name, schema)
        response = self._create(
            input_text=input_text,
            **kwargs,
            text={
                "format": {
                    "type": "json_schema",
                    "name": schema_name,
                    "schema": schema,
                    "strict": True,
                }
            },
        )
        return extract_json(response)


class OpenAICategoryClassifier(_OpenAICollaborator):
    stage = "categorization"

    def __init__(self, client: Any, *, model: str, categories: Sequence[str]) -> None:
        super().__init__(client, model=model)
        self.categories = list(categories)

    def classify(self, question: str) -> str:
        schema = {
            "type": "object",
            "properties": {
                "category": {
                    "type": "string",
                    "enum": self.categories,
                    "description": "Category of the market",
                }
            },
            "required": ["category"],
            "additionalProperties": False,
        }
        options = "\n".join(f"- {category}" for category in self.categories)
        payload = self._structured(
            input_text=(
                f"Categorize the prediction market {question} into one of the following categories:\n"
                f"{options}"
            ),
            schema_name="MarketCategory",
            schema=schema,
        )
        category = str(payload.get("category") or "").strip()
        if category not in self.categories:
            logger.warning("Model returned unknown category {!r}; using Other", category)
            return "Other"
        return category


class OpenAISelector(_OpenAICollaborator):
    stage = "pre-filter"

    def select(self, events: Sequence[NewsEvent], k: int) -> Sequence[int]:
        schema = {
            "type": "object",
            "properties": {
                "selectedIndices": {
                    "type": "array",
                    "items": {"type": "integer"},
                    "description": "Indices of the most interesting events, most interesting first",
                }
            },
            "required": ["selectedIndices"],
            "additionalProperties": False,
        }
        listing = "\n".join(f"[{idx}] {describe_event(event)}" for idx, event in enumerate(events))
        payload = self._structured(
            input_text=(
                "You are a news editor for a prediction-market news feed. "
                f"From the {len(events)} events below, pick the {k} most likely to interest readers. "
                "Prefer resolutions and large price swings over routine new listings.\n\n"
                f"Events:\n{listing}\n\n"
                f"Return exactly {k} indices, most interesting first."
            ),
            schema_name="PreFilterSelection",
            schema=schema,
        )
        indices = payload.get("selectedIndices")
        if not isinstance(indices, list):
            raise CollaboratorError("Selector response is missing selectedIndices")
        return indices


class OpenAIWebSearchEnricher(_OpenAICollaborator):
    stage = "enrichment"

    _SEARCH_HINTS = {
        "PriceChange": "market prediction price movement",
        "StatusChange": "market prediction status update",
        "New": "prediction market",
    }

    def __init__(self, client: Any, *, model: str, search_context_size: str = "high") -> None:
        super().__init__(client, model=model)
        self.search_context_size = search_context_size

    def enrich(self, event: NewsEvent) -> Enrichment | None:
        query = f"{event.market_question} {self._SEARCH_HINTS.get(event.event_type, '')}".strip()
        response = self._create(
            input_text=(
                f"This is a newsworthy event about a prediction market: {describe_event(event)}\n"
                f"Suggested search: {query}\n\n"
                "Research this topic to provide additional context that would make this event more "
                "interesting and newsworthy. Focus on timely, relevant information that could explain "
                "why this market is moving or why it matters. Keep your final summary concise but insightful."
            ),
            tools=[{"type": "web_search", "search_context_size": self.search_context_size}],
        )
        text = extract_output_text(response).strip()
        if not text:
            return None
        return Enrichment(text=text, sources=extract_citations(response))


class OpenAIRanker(_OpenAICollaborator):
    stage = "ranking"

    def rank(self, events: Sequence[EnrichedEvent]) -> Sequence[RankingEntry]:
        schema = {
            "type": "object",
            "properties": {
                "rankedEvents": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "index": {
                                "type": "integer",
                                "description": "Original index of the event in the provided list",
                            },
                            "interestScore": {
                                "type": "integer",
                                "description": "Interest score from 1-10, with 10 being most interesting",
                            },
                            "headline": {"type": "string", "description": "Short news headline"},
                            "description": {
                                "type": "string",
                                "description": "Compelling paragraph on why the event matters. Max 200 characters.",
                            },
                            "imagePrompt": {
                                "type": "string",
                                "description": "Prompt for an illustrative image",
                            },
                        },
                        "required": ["index", "interestScore", "headline", "description", "imagePrompt"],
                        "additionalProperties": False,
                    },
                }
            },
            "required": ["rankedEvents"],
            "additionalProperties": False,
        }
        blocks: list[str] = []
        for idx, enriched in enumerate(events):
            block = f"[{idx}] {describe_event(enriched.event)}"
            if enriched.context:
                block += f"\n\nWeb Search Results: {enriched.context}"
            blocks.append(block)
        payload = self._structured(
            input_text=(
                "You are a news analyst specializing in prediction markets.\n\n"
                f"Below are {len(events)} events, some with additional context from web search. "
                "For every event give an interest score, a headline, a brief compelling description "
                "for a news website (max 200 characters) and an image prompt.\n\n"
                "Events:\n" + "\n\n".join(blocks)
            ),
            schema_name="RankedNewsEvents",
            schema=schema,
        )
        raw_entries = payload.get("rankedEvents")
        if not isinstance(raw_entries, list):
            raise CollaboratorError("Ranker response is missing rankedEvents")

        entries: list[RankingEntry] = []
        for raw in raw_entries:
            if not isinstance(raw, Mapping):
                continue
            try:
                entries.append(
                    RankingEntry(
                        index=int(raw["index"]),
                        interest_score=float(raw["interestScore"]),
                        headline=str(raw.get("headline") or ""),
                        description=str(raw.get("description") or ""),
                        image_prompt=(str(raw["imagePrompt"]) if raw.get("imagePrompt") else None),
                    )
                )
            except (KeyError, TypeError, ValueError):
                logger.warning("Dropping malformed ranking entry: {}", raw)
        return entries


class OpenAIFeaturedChooser(_OpenAICollaborator):
    """Research the candidates with web search, then pick one in a follow-up call."""

    stage = "featured selection"

    def __init__(
        self,
        client: Any,
        *,
        model: str,
        research_model: str,
        search_context_size: str = "high",
    ) -> None:
        super().__init__(client, model=model)
        self.research_model = research_model
        self.search_context_size = search_context_size

    def choose(self, candidates: Sequence[MarketSnapshot]) -> FeaturedChoice:
        listing = "\n".join(
            f'Candidate {position}: "{market.question}" (TVL: ${market.tvl:,.2f})'
            for position, market in enumerate(candidates, start=1)
        )
        research = self._create(
            model=self.research_model,
            input_text=(
                "Research the latest news and information about these prediction market topics:\n"
                f"{listing}\n\n"
                "For each candidate, find out how relevant the topic is to current events, "
                "what recent developments might impact the market and how much public interest "
                "exists right now. Your findings will be used to select one market to feature."
            ),
            tools=[{"type": "web_search", "search_context_size": self.search_context_size}],
        )
        follow_up: dict[str, Any] = {}
        response_id = getattr(research, "id", None)
        if isinstance(response_id, str) and response_id:
            follow_up["previous_response_id"] = response_id

        schema = {
            "type": "object",
            "properties": {
                "selectedCandidateIndex": {
                    "type": "integer",
                    "description": "The number of the selected candidate (1-based)",
                },
                "reason": {
                    "type": "string",
                    "description": "Why this market is the most relevant to current news",
                },
            },
            "required": ["selectedCandidateIndex", "reason"],
            "additionalProperties": False,
        }
        payload = self._structured(
            input_text=(
                f"Based on your research about these prediction markets:\n{listing}\n\n"
                "Select the ONE market with the most relevance to current events and news, "
                "the one most likely to interest users right now. "
                f"Return the candidate number (1 to {len(candidates)}) and a brief reason."
            ),
            schema_name="FeaturedMarketChoice",
            schema=schema,
            **follow_up,
        )
        position = payload.get("selectedCandidateIndex")
        if isinstance(position, bool) or not isinstance(position, int):
            raise CollaboratorError("Featured choice is missing selectedCandidateIndex")
        return FeaturedChoice(index=position - 1, reason=str(payload.get("reason") or ""))



__all__ = [
    "OpenAICategoryClassifier",
    "OpenAIFeaturedChooser",
    "OpenAIRanker",
    "OpenAISelector",
    "OpenAIWebSearchEnricher",
    "describe_event",
    "extract_citations",
    "extract_json",
    "extract_output_text",
]
