"""AI search backends for PlaceLore."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence

import httpx

from placelore.metrics.observability import get_logger
from placelore.models import Query, RawResponse, SearchResult


class PlaceLoreError(RuntimeError):
    """Base class for errors surfaced to feature slots."""


class TransportError(PlaceLoreError):
    """Raised when an external call fails (network, non-2xx, malformed body)."""


@dataclass(frozen=True)
class SearchConfig:
    """Configuration for the Perplexity chat completions client."""

    api_key: str | None = None
    base_url: str = "https://api.perplexity.ai"
    model: str = "sonar-pro"
    temperature: float | None = None
    search_context_size: str | None = None
    timeout: float = 60.0


class SearchBackend(Protocol):
    """Protocol describing the AI search collaborator."""

    async def search(self, query: Query) -> RawResponse:
        """Return free-form text (which may embed JSON) for the query."""


class PerplexitySearchClient:
    """HTTPX-based client for Perplexity's Sonar chat completions API."""

    def __init__(self, config: SearchConfig | None = None, *, client: httpx.AsyncClient | None = None) -> None:
        self._config = config or SearchConfig()
        self._client = client or httpx.AsyncClient(base_url=self._config.base_url, timeout=self._config.timeout)
        self._owns_client = client is None
        self._logger = get_logger("search")

    async def search(self, query: Query) -> RawResponse:
        if not self._config.api_key:
            raise TransportError("Missing Perplexity API key")
        payload = self._build_payload(query)
        headers = {"Authorization": f"Bearer {self._config.api_key}"}
        try:
            response = await self._client.post("/chat/completions", json=payload, headers=headers)
        except httpx.HTTPError as exc:
            self._logger.warning("search.transport_error", mode=query.mode.value, detail=str(exc))
            raise TransportError(f"Search request failed: {exc}") from exc
        if response.status_code >= 400:
            detail = response.text.strip()
            self._logger.warning("search.http_error", mode=query.mode.value, status=response.status_code)
            raise TransportError(detail or f"Search request failed: HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise TransportError("Malformed search response") from exc
        if not isinstance(data, Mapping):
            raise TransportError("Malformed search response")
        return RawResponse(
            text=_join_choices(data.get("choices")),
            usage=data.get("usage") if isinstance(data.get("usage"), Mapping) else None,
            search_results=_search_results(data.get("search_results")),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _build_payload(self, query: Query) -> dict[str, Any]:
        if query.messages:
            messages = [{"role": message.role, "content": message.content} for message in query.messages]
        else:
            messages = [{"role": "user", "content": query.prompt}]
        web_search_options: dict[str, Any] = {"search_type": query.mode.value}
        context_size = query.search_context_size or self._config.search_context_size
        if context_size:
            web_search_options["search_context_size"] = context_size
        payload: dict[str, Any] = {
            "model": query.model or self._config.model,
            "messages": messages,
            "stream": False,
            "web_search_options": web_search_options,
        }
        temperature = query.temperature if query.temperature is not None else self._config.temperature
        if temperature is not None:
            payload["temperature"] = temperature
        return payload


def _join_choices(choices: object) -> str:
    if not isinstance(choices, list):
        return ""
    parts: list[str] = []
    for choice in choices:
        message = choice.get("message") if isinstance(choice, Mapping) else None
        content = message.get("content") if isinstance(message, Mapping) else None
        if isinstance(content, str) and content:
            parts.append(content)
    return "".join(parts)


def _search_results(value: object) -> Sequence[SearchResult]:
    if not isinstance(value, list):
        return ()
    results: list[SearchResult] = []
    for item in value:
        if not isinstance(item, Mapping):
            continue
        results.append(
            SearchResult(
                title=str(item.get("title", "")),
                url=str(item.get("url", "")),
                date=item.get("date"),
                last_updated=item.get("last_updated"),
                snippet=item.get("snippet"),
                source=item.get("source"),
            ),
        )
    return tuple(results)
