"""
Text-to-Speech API Routes.

This module defines the REST endpoints of the generation service. All
endpoints go through the shared GenerationService; identity-required
routes receive the caller from get_caller().

Endpoints (mounted under the configured prefix, default /api/tts):
    POST   /generate              - Generate speech, store it, record it
    GET    /download/{filename}   - Stream a stored MP3 (no identity)
    GET    /generations           - Caller's history, newest first
    GET    /generations/{id}      - One record with full text
    DELETE /generations/{id}      - Delete record and artifact
    GET    /voices                - Voice catalogue (no identity)
    GET    /stats                 - Caller's usage totals

Endpoints (mounted at the root):
    GET    /health                - Liveness / readiness, ?detailed=true for more
    GET    /metrics               - Prometheus metrics

Request Flow:
    1. bind_request_id() assigns a request id for log correlation
    2. enforce_api_limit() applies the per-IP api limiter
    3. get_caller() resolves the bearer token (identity routes only)
    4. The handler calls GenerationService and shapes the response

Error Handling:
    All errors are returned as JSON with standardized format:
    {
        "ok": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>",
        "request_id": "<12 char id>",
        "details": {...}            # only when api.debug is true
    }

    HTTP status codes come from services.errors.HTTP_STATUS. RATE_LIMITED
    responses carry a Retry-After header. Errors raised inside
    dependencies (401, 429) reach the same format through the handlers
    installed by register_error_handlers().

Example Usage:
    >>> import requests
    >>> response = requests.post(
    ...     "http://localhost:8000/api/tts/generate",
    ...     headers={"Authorization": "Bearer <token>"},
    ...     json={"text": "Hello world", "voice": "nova", "speed": 1.0},
    ... )
    >>> response.json()["audioUrl"]
    '/api/tts/download/speech_2024-...mp3'
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from speechmagic.api.dependencies import (
    CallerIdentity,
    bind_request_id,
    enforce_api_limit,
    get_caller,
    get_generation_service,
    get_settings,
)
from speechmagic.api.schemas import (
    DeleteResponse,
    GenerateRequest,
    GenerateResponse,
    GenerationDetailResponse,
    GenerationItem,
    GenerationListResponse,
    OwnerStatsResponse,
    Pagination,
    VoiceItem,
    VoiceList,
)
from speechmagic.core.logging import error, get_logger, get_request_id
from speechmagic.core.metrics import metrics
from speechmagic.services.errors import HTTP_STATUS, ErrorCode, RateLimitedError, SpeechMagicError
from speechmagic.services.generation_service import GenerationService

# Routes under the API prefix; every one passes the request-id and api-limit guards
router = APIRouter(dependencies=[Depends(bind_request_id), Depends(enforce_api_limit)])

# Routes at the root, outside the api limiter
health_router = APIRouter()

_LOG = get_logger("speechmagic.api")


def _error_response(err: SpeechMagicError, include_details: bool = False) -> JSONResponse:
    """
    Create a standardized JSON error response from a SpeechMagicError.

    Args:
        err: The error to report.
        include_details: Expose err.details (api.debug).

    Returns:
        JSONResponse with the status mapped from err.code.
    """
    content = err.to_dict(include_details=include_details)
    content["request_id"] = get_request_id()
    headers = None
    if isinstance(err, RateLimitedError):
        headers = {"Retry-After": str(err.retry_after)}
    return JSONResponse(
        status_code=HTTP_STATUS.get(err.code, 500),
        content=jsonable_encoder(content),
        headers=headers,
    )


def _internal_error(exc: Exception) -> JSONResponse:
    error(_LOG, "unhandled_error", error=str(exc), error_type=type(exc).__name__)
    metrics.record_failure(ErrorCode.INTERNAL_ERROR)
    return JSONResponse(
        status_code=500,
        content={
            "ok": False,
            "error": ErrorCode.INTERNAL_ERROR,
            "message": "Internal server error",
            "request_id": get_request_id(),
        },
    )


# =============================================================================
# Generation
# =============================================================================

@router.post("/generate", response_model=GenerateResponse)
async def generate(
    req: GenerateRequest,
    response: Response,
    caller: CallerIdentity = Depends(get_caller),
    service: GenerationService = Depends(get_generation_service),
):
    """
    Generate speech for the caller.

    Synthesizes the text with the speech provider, stores the MP3 and
    records the generation in the caller's history.

    Returns:
        GenerateResponse (camelCase JSON) with the download URL.

    Raises:
        400: Invalid text
        401: Missing or unknown token
        429: Generation or api limit reached (Retry-After set)
        503: Speech provider unavailable, throttling, or misconfigured
        500: Synthesis, storage or persistence failure

    Example:
        curl -X POST http://localhost:8000/api/tts/generate \\
            -H "Authorization: Bearer <token>" \\
            -H "Content-Type: application/json" \\
            -d '{"text": "Hello world"}'
    """
    try:
        outcome = await service.generate(caller.owner_id, req.text, req.voice, req.speed)
    except SpeechMagicError as e:
        return _error_response(e, service.config.api.debug)
    except Exception as e:
        return _internal_error(e)

    response.headers["X-Request-Id"] = get_request_id()
    return GenerateResponse.from_outcome(outcome)


@router.get("/download/{filename}")
async def download(
    filename: str,
    service: GenerationService = Depends(get_generation_service),
):
    """
    Stream a stored artifact as an MP3 attachment.

    Not owner-scoped: the filename is the capability. Names with
    traversal tokens or the wrong extension are rejected with 400 before
    the filesystem is touched.
    """
    try:
        chunks, size = await service.open_download(filename)
    except SpeechMagicError as e:
        return _error_response(e, service.config.api.debug)
    except Exception as e:
        return _internal_error(e)

    headers = {
        "Content-Disposition": f'attachment; filename="{filename}"',
        "Cache-Control": f"public, max-age={service.config.api.download_cache_seconds}",
        "Content-Length": str(size),
        "X-Request-Id": get_request_id(),
    }
    return StreamingResponse(chunks, media_type="audio/mpeg", headers=headers)


# =============================================================================
# History
# =============================================================================

@router.get("/generations", response_model=GenerationListResponse)
async def list_generations(
    limit: Optional[int] = Query(default=None),
    offset: Optional[int] = Query(default=None),
    caller: CallerIdentity = Depends(get_caller),
    service: GenerationService = Depends(get_generation_service),
):
    """Caller's generations, newest first. limit is clamped to 1-100."""
    try:
        page = await service.list_generations(caller.owner_id, limit, offset)
    except SpeechMagicError as e:
        return _error_response(e, service.config.api.debug)
    except Exception as e:
        return _internal_error(e)

    return GenerationListResponse(
        generations=[GenerationItem.from_record(r) for r in page.records],
        pagination=Pagination(limit=page.limit, offset=page.offset, total=page.total),
    )


@router.get("/generations/{generation_id}", response_model=GenerationDetailResponse)
async def get_generation(
    generation_id: str,
    caller: CallerIdentity = Depends(get_caller),
    service: GenerationService = Depends(get_generation_service),
):
    """One generation with its full text. Someone else's record is 404."""
    try:
        record = await service.get_generation(caller.owner_id, generation_id)
    except SpeechMagicError as e:
        return _error_response(e, service.config.api.debug)
    except Exception as e:
        return _internal_error(e)

    return GenerationDetailResponse(generation=GenerationItem.from_record(record, include_text=True))


@router.delete("/generations/{generation_id}", response_model=DeleteResponse)
async def delete_generation(
    generation_id: str,
    caller: CallerIdentity = Depends(get_caller),
    service: GenerationService = Depends(get_generation_service),
):
    """
    Delete a generation and its artifact.

    Succeeds even when the artifact is already gone.
    """
    try:
        await service.delete_generation(caller.owner_id, generation_id)
    except SpeechMagicError as e:
        return _error_response(e, service.config.api.debug)
    except Exception as e:
        return _internal_error(e)

    return DeleteResponse()


@router.get("/stats", response_model=OwnerStatsResponse)
async def owner_stats(
    caller: CallerIdentity = Depends(get_caller),
    service: GenerationService = Depends(get_generation_service),
):
    try:
        stats = await service.get_stats(caller.owner_id)
    except SpeechMagicError as e:
        return _error_response(e, service.config.api.debug)
    except Exception as e:
        return _internal_error(e)

    return OwnerStatsResponse.from_stats(stats)


# =============================================================================
# Catalogue
# =============================================================================

@router.get("/voices", response_model=VoiceList)
def list_voices(service: GenerationService = Depends(get_generation_service)):
    """Available voices and the default voice."""
    return VoiceList(
        voices=[VoiceItem.from_voice(v) for v in service.list_voices()],
        default_voice=service.client.default_voice,
    )


# =============================================================================
# Operations
# =============================================================================

@health_router.get("/health")
def health(
    detailed: bool = Query(default=False),
    service: GenerationService = Depends(get_generation_service),
):
    """
    Health check endpoint for load balancers and orchestration.

    Returns 200 when the ledger answers, 503 otherwise. With
    ?detailed=true the body also reports provider configuration,
    storage usage and limiter counters.
    """
    info = service.get_health_info(detailed=detailed)
    return JSONResponse(status_code=200 if info["ok"] else 503, content=jsonable_encoder(info))


@health_router.get("/metrics")
def prometheus_metrics():
    """
    Prometheus metrics endpoint.

    Exposes:
        - speechmagic_generations_total{status}
        - speechmagic_generation_duration_seconds
        - speechmagic_provider_duration_seconds
        - speechmagic_audio_bytes_total
        - speechmagic_failures_total{code}
        - speechmagic_rate_limited_total{limiter}
        - speechmagic_artifacts_deleted_total{outcome}
    """
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)


# =============================================================================
# Exception handlers
# =============================================================================

def _include_details() -> bool:
    return get_settings().get_service_config().api.debug


def register_error_handlers(app: FastAPI) -> None:
    """
    Install handlers for errors raised outside route bodies.

    SpeechMagicError covers dependency failures (401 from get_caller,
    429 from the limiters). Request body schema errors are reported as
    INVALID_INPUT instead of FastAPI's default 422.
    """

    @app.exception_handler(SpeechMagicError)
    async def _speechmagic_error(request: Request, exc: SpeechMagicError):
        return _error_response(exc, _include_details())

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        err = SpeechMagicError("Invalid request body", ErrorCode.INVALID_INPUT,
                               {"errors": jsonable_encoder(exc.errors())})
        return _error_response(err, _include_details())
