"""
Content Ingestion API
=====================
REST API for batch submission, transcription webhooks and pipeline status.

``create_app()`` builds the application around an explicit ``Config``.
All collaborators live on a ``Services`` container attached to
``app.state``; tests pass their own container with fakes in place of the
external clients.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..core.config import Config
from ..core.exceptions import (
    ContentNotFoundError,
    ExternalServiceError,
    InvalidTransitionError,
    PipelineException,
    QuotaException,
    QuotaStoreError,
    RateLimitError,
    StorageException,
    ValidationException,
)
from ..core.logging_config import get_logger
from ..pipeline.batch import BatchIngestionOrchestrator
from ..pipeline.clients import (
    Analyzer,
    HttpAnalyzer,
    HttpTextExtractor,
    TextExtractor,
    Transcriber,
    TranscriptionClient,
)
from ..pipeline.dispatcher import AnalysisDispatcher
from ..pipeline.moderation import ModerationScreen
from ..pipeline.quota import QuotaLedger
from ..pipeline.state_machine import IngestionStateMachine
from ..pipeline.tasks import TaskSupervisor
from ..pipeline.tiers import normalize_tier
from ..pipeline.transcription import TranscriptionCallbackHandler
from ..storage.database import DatabaseManager
from ..storage.repositories import (
    AccountRepository,
    ContentRepository,
    ModerationFlagRepository,
    SummaryRepository,
    UsageRepository,
)
from .security import ClientRateLimiter, Principal, client_key, get_current_principal, get_operator

logger = get_logger(__name__)


# --- Models ---
class BatchRequest(BaseModel):
    """
    Data model for batch submissions.
    """
    urls: List[Any]
    language: Optional[str] = Field(None, max_length=10)


class BatchItemResponse(BaseModel):
    url: str
    contentId: Optional[str]
    type: Optional[str]
    error: Optional[str] = None
    existing: bool = False


class RejectedUrlResponse(BaseModel):
    url: Any
    reason: str


class BatchResponse(BaseModel):
    results: List[BatchItemResponse]
    invalid: List[RejectedUrlResponse]
    deduplicated: List[str]
    skippedDueToLimit: int
    batchLimit: int
    tier: str


class UsageEntry(BaseModel):
    current: int
    limit: Optional[int]


class UsageResponse(BaseModel):
    tier: str
    period: str
    usage: Dict[str, UsageEntry]


class SummaryState(BaseModel):
    processingStatus: str
    errorCode: Optional[str] = None
    message: Optional[str] = None


class ContentStatusResponse(BaseModel):
    contentId: str
    status: str
    type: str
    title: Optional[str]
    summary: Optional[SummaryState] = None


class RetryResponse(BaseModel):
    contentId: str
    status: str


# --- Components ---
@dataclass
class Services:
    """Every collaborator the routes need, built once per process."""

    db: DatabaseManager
    contents: ContentRepository
    summaries: SummaryRepository
    flags: ModerationFlagRepository
    usage: UsageRepository
    accounts: AccountRepository
    ledger: QuotaLedger
    moderation: ModerationScreen
    dispatcher: AnalysisDispatcher
    state_machine: IngestionStateMachine
    callbacks: TranscriptionCallbackHandler
    batch: BatchIngestionOrchestrator
    supervisor: TaskSupervisor
    rate_limiter: ClientRateLimiter
    closeables: List[Any] = field(default_factory=list)

    async def close(self) -> None:
        await self.supervisor.shutdown()
        for client in self.closeables:
            await client.close()
        await self.db.disconnect()


def build_services(
    config: Config,
    db: Optional[DatabaseManager] = None,
    transcriber: Optional[Transcriber] = None,
    extractor: Optional[TextExtractor] = None,
    analyzer: Optional[Analyzer] = None,
    **dispatcher_kwargs: Any,
) -> Services:
    """
    Wire repositories, pipeline components and clients together.

    Any external client left as None is replaced by its HTTP
    implementation.
    """
    db = db or DatabaseManager(config.storage)
    closeables = []
    if transcriber is None:
        transcriber = TranscriptionClient(config.services)
        closeables.append(transcriber)
    if extractor is None:
        extractor = HttpTextExtractor(config.services)
        closeables.append(extractor)
    if analyzer is None:
        analyzer = HttpAnalyzer(config.services)
        closeables.append(analyzer)

    contents = ContentRepository(db)
    summaries = SummaryRepository(db)
    flags = ModerationFlagRepository(db)
    usage = UsageRepository(db)
    supervisor = TaskSupervisor()

    moderation = ModerationScreen(
        flags,
        keyword_scan_chars=config.pipeline.keyword_scan_chars,
        preview_chars=config.pipeline.flag_preview_chars,
    )
    dispatcher = AnalysisDispatcher(
        contents, summaries, analyzer, moderation, config.pipeline, **dispatcher_kwargs
    )
    state_machine = IngestionStateMachine(
        contents,
        summaries,
        moderation,
        dispatcher,
        transcriber,
        extractor,
        supervisor,
        config.pipeline,
    )
    ledger = QuotaLedger(usage)

    return Services(
        db=db,
        contents=contents,
        summaries=summaries,
        flags=flags,
        usage=usage,
        accounts=AccountRepository(db),
        ledger=ledger,
        moderation=moderation,
        dispatcher=dispatcher,
        state_machine=state_machine,
        callbacks=TranscriptionCallbackHandler(
            contents, summaries, moderation, dispatcher, config.services, config.pipeline
        ),
        batch=BatchIngestionOrchestrator(contents, ledger, state_machine, config.pipeline),
        supervisor=supervisor,
        rate_limiter=ClientRateLimiter(
            config.api.batch_rate_limit, config.api.batch_rate_limit_window
        ),
        closeables=closeables,
    )


_STATUS_CODES = (
    (ValidationException, status.HTTP_400_BAD_REQUEST),
    (QuotaStoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (QuotaException, status.HTTP_403_FORBIDDEN),
    (ContentNotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (RateLimitError, status.HTTP_429_TOO_MANY_REQUESTS),
    (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
    (StorageException, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def status_code_for(exc: PipelineException) -> int:
    for exc_type, code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def pipeline_exception_handler(request: Request, exc: PipelineException) -> JSONResponse:
    code = status_code_for(exc)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r}", exc_info=exc.cause)
    headers = {}
    if isinstance(exc, RateLimitError) and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(status_code=code, content=exc.to_dict(), headers=headers)


def get_services(request: Request) -> Services:
    return request.app.state.services


def create_app(config: Optional[Config] = None, services: Optional[Services] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Configuration; loaded from the environment when omitted
        services: Pre-built services; when omitted they are built and
            torn down by the application lifespan
    """
    config = config or Config.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup and shutdown logic.
        """
        owned = app.state.services is None
        if owned:
            app.state.services = build_services(config)
        try:
            await app.state.services.db.connect()
            if owned:
                await app.state.services.db.create_tables()
            yield
        finally:
            if owned:
                await app.state.services.close()

    app = FastAPI(
        title="Content Ingestion API",
        description="Batch ingestion, transcription callbacks and moderation screening.",
        version="0.1.0",
        debug=config.api.debug,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type"],
    )
    app.add_exception_handler(PipelineException, pipeline_exception_handler)

    # --- Endpoints ---

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "service": "content-ingest"}

    @app.get("/api/v1/webhooks/transcription")
    async def transcription_webhook_check():
        """Reachability check for the vendor's webhook configuration."""
        return {"status": "ok", "endpoint": "transcription-webhook"}

    @app.post("/api/v1/webhooks/transcription")
    async def transcription_webhook(
        request: Request,
        services: Services = Depends(get_services),
    ):
        """
        Transcription vendor callback, authenticated by the ``token`` query
        parameter.
        """
        try:
            payload = await request.json()
        except ValueError:
            payload = None

        result = await services.callbacks.handle_callback(
            payload, request.query_params.get("token")
        )
        return JSONResponse(status_code=result.status_code, content=result.body)

    @app.post("/api/v1/batch", response_model=BatchResponse)
    async def submit_batch(
        body: BatchRequest,
        request: Request,
        principal: Principal = Depends(get_current_principal),
        services: Services = Depends(get_services),
    ):
        """
        Submit up to the tier's batch limit of URLs for analysis.
        """
        services.rate_limiter.check(client_key(request))
        tier = await services.accounts.get_tier(principal.account_id)
        result = await services.batch.submit_batch(
            body.urls, principal.account_id, tier, body.language
        )
        return result.to_dict()

    @app.get("/api/v1/usage", response_model=UsageResponse)
    async def get_usage(
        principal: Principal = Depends(get_current_principal),
        services: Services = Depends(get_services),
    ):
        """
        Current period usage and limits for the caller's tier.
        """
        tier = await services.accounts.get_tier(principal.account_id)
        snapshot = await services.ledger.snapshot(principal.account_id, tier)
        return {
            "tier": normalize_tier(tier),
            "period": services.ledger.period(),
            "usage": snapshot,
        }

    @app.get("/api/v1/content/{content_id}/status", response_model=ContentStatusResponse)
    async def get_content_status(
        content_id: str,
        principal: Principal = Depends(get_current_principal),
        services: Services = Depends(get_services),
    ):
        """
        Processing status of one content row owned by the caller.
        """
        content = await services.contents.get(content_id)
        if content is None or (
            content.account_id != principal.account_id and not principal.is_operator
        ):
            raise ContentNotFoundError(content_id)

        summary = await services.summaries.get(content.id, content.analysis_language)
        return {
            "contentId": content.id,
            "status": content.status,
            "type": content.type,
            "title": content.title,
            "summary": {
                "processingStatus": summary.processing_status,
                "errorCode": summary.error_code,
                "message": summary.brief_overview,
            } if summary else None,
        }

    @app.post("/api/v1/content/{content_id}/retry", response_model=RetryResponse)
    async def retry_content(
        content_id: str,
        operator: Principal = Depends(get_operator),
        services: Services = Depends(get_services),
    ):
        """
        Operator-triggered retry from ``pending``, ``blocked`` or ``error``.
        """
        new_status = await services.state_machine.retry(content_id)
        logger.info(f"Operator {operator.account_id} retried {content_id} -> {new_status}")
        return {"contentId": content_id, "status": new_status}

    return app
