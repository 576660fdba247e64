"""FastAPI application exposing the PlaceLore map session."""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from placelore.api.schemas import (
    FeatureSnapshotModel,
    LocateRequest,
    PersonPathRequest,
    SearchRequest,
    SearchResponse,
    SearchResultModel,
    SelectionRequest,
    SelectionResponse,
    ShuffleRequest,
)
from placelore.config import Settings, get_settings
from placelore.geocoding.service import GeocodingConfig, NominatimGeocoder
from placelore.metrics.observability import bind_correlation_id, clear_correlation_id, configure_logging, get_logger
from placelore.models import ChatMessage, Query, SearchMode
from placelore.search.client import PerplexitySearchClient, SearchBackend, SearchConfig, TransportError
from placelore.services.prompts import PromptBuilder, PromptBuilderConfig
from placelore.services.session import MapSession, SelectionMode, build_session


@dataclass(frozen=True)
class AppDependencies:
    search: SearchBackend
    session: MapSession
    closers: Sequence[Callable[[], Awaitable[None]]] = ()

    async def aclose(self) -> None:
        await self.session.close()
        for close in self.closers:
            await close()


def _build_dependencies(settings: Settings) -> AppDependencies:
    search = PerplexitySearchClient(
        SearchConfig(
            api_key=settings.perplexity_api_key,
            base_url=settings.perplexity_base_url,
            model=settings.search_model,
            temperature=settings.search_temperature,
            search_context_size=settings.search_context_size,
            timeout=settings.search_timeout_seconds,
        ),
    )
    geocoder = NominatimGeocoder(
        GeocodingConfig(
            base_url=settings.nominatim_base_url,
            user_agent=settings.nominatim_user_agent,
            language=settings.nominatim_language,
            timeout=settings.geocode_timeout_seconds,
        ),
    )
    prompts = PromptBuilder(
        PromptBuilderConfig(
            timeline_events=settings.timeline_event_count,
            related_cities=settings.connection_count,
            max_keywords=settings.keyword_max_words,
        ),
    )
    session = build_session(
        search,
        geocoder,
        prompts=prompts,
        timeline_delay=settings.timeline_emit_delay_seconds,
        keyword_delay=settings.keyword_emit_delay_seconds,
        keyword_batch_size=settings.keyword_batch_size,
        keyword_max_words=settings.keyword_max_words,
        connection_max_geocoded=settings.connection_max_geocoded,
        geocode_concurrency=settings.geocode_concurrency,
        person_path_delay=settings.person_path_emit_delay_seconds,
    )
    return AppDependencies(search=search, session=session, closers=(search.aclose, geocoder.aclose))


def create_app(*, settings: Settings | None = None, dependencies: AppDependencies | None = None) -> FastAPI:
    settings = settings or get_settings()
    deps = dependencies or _build_dependencies(settings)

    configure_logging()
    logger = get_logger("api")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.dependencies.aclose()

    app = FastAPI(title="PlaceLore API", version="0.1.0", lifespan=lifespan)
    app.state.dependencies = deps

    # Optional CORS
    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_allow_origins),
            allow_credentials=settings.cors_allow_credentials,
            allow_methods=list(settings.cors_allow_methods),
            allow_headers=list(settings.cors_allow_headers),
        )

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):  # type: ignore[override]
        correlation_id = request.headers.get("X-Request-ID", uuid4().hex)
        request.state.correlation_id = correlation_id
        bind_correlation_id(correlation_id)
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()
        response.headers["X-Correlation-ID"] = correlation_id
        return response

    # Security dependencies
    def require_api_key(request: Request) -> None:
        expected = settings.api_key
        if not expected:
            return
        provided = request.headers.get("X-API-Key")
        if provided != expected:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")

    class RateLimiter:
        def __init__(self, requests: int, window_seconds: int) -> None:
            self.requests = requests
            self.window = window_seconds
            self._buckets: dict[str, list[float]] = {}

        def __call__(self, request: Request) -> None:
            client_ip = request.headers.get("x-forwarded-for") or (request.client.host if request.client else "-")
            key = f"{client_ip}:{request.url.path}"
            now = time.time()
            bucket = self._buckets.setdefault(key, [])
            # Drop old entries
            cutoff = now - self.window
            while bucket and bucket[0] < cutoff:
                bucket.pop(0)
            if len(bucket) >= self.requests:
                raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded")
            bucket.append(now)

    rate_limiter = RateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)

    @app.exception_handler(TransportError)
    async def handle_transport_error(request: Request, exc: TransportError) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        logger.error("transport.error", correlation_id=correlation_id, detail=str(exc))
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": str(exc), "correlation_id": correlation_id},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", uuid4().hex)
        logger.error("unhandled.error", correlation_id=correlation_id, detail=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal Server Error", "correlation_id": correlation_id},
        )

    def get_dependencies(request: Request) -> AppDependencies:
        return request.app.state.dependencies

    def get_search(dep: AppDependencies = Depends(get_dependencies)) -> SearchBackend:
        return dep.search

    def get_session(dep: AppDependencies = Depends(get_dependencies)) -> MapSession:
        return dep.session

    def selection_response(session: MapSession) -> SelectionResponse:
        return SelectionResponse.from_snapshot(session.snapshot())

    @app.post("/api/search", response_model=SearchResponse)
    async def search_proxy(
        payload: SearchRequest,
        search: SearchBackend = Depends(get_search),
        _auth: None = Depends(require_api_key),
        _rl: None = Depends(rate_limiter),
    ) -> SearchResponse:
        prompt = (payload.prompt or "").strip()
        if not prompt and not payload.messages:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing prompt or messages")
        query = Query(
            prompt=prompt,
            mode=SearchMode(payload.search_type),
            messages=tuple(ChatMessage(role=m.role, content=m.content) for m in payload.messages or ()),
            model=payload.model,
            temperature=payload.temperature,
            search_context_size=payload.search_context_size,
        )
        raw = await search.search(query)
        return SearchResponse(
            text=raw.text,
            usage=dict(raw.usage) if raw.usage is not None else None,
            search_results=[
                SearchResultModel(
                    title=result.title,
                    url=result.url,
                    date=result.date,
                    last_updated=result.last_updated,
                    snippet=result.snippet,
                    source=result.source,
                )
                for result in raw.search_results
            ],
        )

    @app.get("/selection", response_model=SelectionResponse)
    async def get_selection(session: MapSession = Depends(get_session)) -> SelectionResponse:
        return selection_response(session)

    @app.post("/selection", response_model=SelectionResponse, status_code=status.HTTP_202_ACCEPTED)
    async def select_location(
        payload: SelectionRequest,
        wait: bool = False,
        session: MapSession = Depends(get_session),
        _auth: None = Depends(require_api_key),
        _rl: None = Depends(rate_limiter),
    ) -> SelectionResponse:
        session.select(payload.lat, payload.lon, SelectionMode(payload.mode))
        if wait:
            await session.settle()
        return selection_response(session)

    @app.post("/selection/locate", response_model=SelectionResponse, status_code=status.HTTP_202_ACCEPTED)
    async def locate_city(
        payload: LocateRequest,
        wait: bool = False,
        session: MapSession = Depends(get_session),
        _auth: None = Depends(require_api_key),
        _rl: None = Depends(rate_limiter),
    ) -> SelectionResponse:
        name = payload.name.strip()
        if not name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No city name provided")
        session.locate(name, SelectionMode(payload.mode))
        if wait:
            await session.settle()
        return selection_response(session)

    @app.post("/selection/shuffle", response_model=SelectionResponse, status_code=status.HTTP_202_ACCEPTED)
    async def shuffle_city(
        payload: ShuffleRequest | None = None,
        wait: bool = False,
        session: MapSession = Depends(get_session),
        _auth: None = Depends(require_api_key),
        _rl: None = Depends(rate_limiter),
    ) -> SelectionResponse:
        session.shuffle(SelectionMode(payload.mode if payload else "explore"))
        if wait:
            await session.settle()
        return selection_response(session)

    @app.delete("/selection", status_code=status.HTTP_204_NO_CONTENT)
    async def clear_selection(
        session: MapSession = Depends(get_session),
        _auth: None = Depends(require_api_key),
    ) -> Response:
        session.clear()
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    def lookup_feature(session: MapSession, feature: str):
        try:
            return session.feature(feature)
        except KeyError as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown feature: {feature}") from exc

    @app.get("/features/{feature}", response_model=FeatureSnapshotModel)
    async def get_feature(feature: str, session: MapSession = Depends(get_session)) -> FeatureSnapshotModel:
        return FeatureSnapshotModel.from_snapshot(lookup_feature(session, feature).snapshot())

    @app.post("/features/{feature}/retry", response_model=FeatureSnapshotModel, status_code=status.HTTP_202_ACCEPTED)
    async def retry_feature(
        feature: str,
        wait: bool = False,
        session: MapSession = Depends(get_session),
        _auth: None = Depends(require_api_key),
        _rl: None = Depends(rate_limiter),
    ) -> FeatureSnapshotModel:
        orchestrator = lookup_feature(session, feature)
        if orchestrator.retry() is None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Feature has not been triggered")
        if wait:
            await orchestrator.wait()
        return FeatureSnapshotModel.from_snapshot(orchestrator.snapshot())

    @app.get("/person-path", response_model=FeatureSnapshotModel)
    async def get_person_path(session: MapSession = Depends(get_session)) -> FeatureSnapshotModel:
        return FeatureSnapshotModel.from_snapshot(session.person_path.snapshot())

    @app.post("/person-path", response_model=FeatureSnapshotModel, status_code=status.HTTP_202_ACCEPTED)
    async def trace_person_path(
        payload: PersonPathRequest,
        wait: bool = False,
        session: MapSession = Depends(get_session),
        _auth: None = Depends(require_api_key),
        _rl: None = Depends(rate_limiter),
    ) -> FeatureSnapshotModel:
        name = payload.name.strip()
        if not name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No person name provided")
        session.person_path.trigger(name)
        if wait:
            await session.person_path.wait()
        return FeatureSnapshotModel.from_snapshot(session.person_path.snapshot())

    @app.post("/person-path/retry", response_model=FeatureSnapshotModel, status_code=status.HTTP_202_ACCEPTED)
    async def retry_person_path(
        wait: bool = False,
        session: MapSession = Depends(get_session),
        _auth: None = Depends(require_api_key),
        _rl: None = Depends(rate_limiter),
    ) -> FeatureSnapshotModel:
        if session.person_path.retry() is None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No person has been searched yet")
        if wait:
            await session.person_path.wait()
        return FeatureSnapshotModel.from_snapshot(session.person_path.snapshot())

    @app.get("/metrics")
    async def metrics() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        from placelore import __version__

        return {"status": "ok", "version": __version__, "environment": settings.environment}

    @app.head("/healthz")
    async def healthcheck_head() -> Response:
        return Response(status_code=status.HTTP_200_OK)

    @app.get("/livez")
    async def liveness() -> dict[str, str]:
        return {"status": "alive"}

    return app


app = create_app()
