"""
CareGuard API — Main Application

POST /filter        Filter a candidate response through all layers
POST /filter/raw    Clean raw generator output, then filter it
POST /sanitize      Sanitize a patient query and wrap it for the prompt
GET  /patterns      List detection patterns (no regex source)
GET  /health        Health check
"""

from __future__ import annotations

import time
from dataclasses import asdict
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from careguard import __version__
from careguard.config import settings
from careguard.logging import setup_logging, get_logger
from careguard.orchestrator import FilterOrchestrator
from careguard.output_cleanup import prepare_candidate
from careguard.sanitizer import wrap_query_for_prompt
from careguard.types import (
    Blocked,
    CandidateResponse,
    Citation,
    FilteredResponse,
    Rephrased,
    category_counts,
)
from careguard.schemas.filter import (
    CitationModel,
    FilterRequest,
    FilterResponse,
    HealthResponse,
    PatternsResponse,
    RawFilterRequest,
    SanitizeRequest,
    SanitizeResponse,
)

logger = get_logger("api")

# Built at import: a bad pattern table stops the app from starting
orchestrator = FilterOrchestrator()


# ============================================================
# STARTUP / SHUTDOWN
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info(
        "CareGuard API starting",
        extra={
            "core_version": settings.CORE_VERSION,
            "pattern_count": orchestrator.registry.pattern_count,
        },
    )
    yield
    logger.info("CareGuard API shutting down")


app = FastAPI(
    title="CareGuard API",
    description="Fail-closed safety filter for patient-facing generated text",
    version=f"{__version__} (core {settings.CORE_VERSION})",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",")],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    allow_credentials=False,
)


# ============================================================
# GLOBAL ERROR HANDLER
# ============================================================

@app.exception_handler(Exception)
async def global_error_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions. Never echo exception text: it may hold patient content."""
    logger.error(
        "Unhandled exception",
        extra={
            "error_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error. The request could not be completed."},
    )


# ============================================================
# HELPERS
# ============================================================

def _to_citations(models: list[CitationModel]) -> tuple[Citation, ...]:
    return tuple(Citation(**m.model_dump()) for m in models)


def _public_diff_spans(spans) -> list[dict]:
    # Deleted spans are the flagged wording; clients get positions only
    return [
        {k: v for k, v in s.items() if k != "text"} if s["type"] == "delete" else dict(s)
        for s in spans
    ]


def _serialize(result: FilteredResponse) -> dict:
    outcome = result.outcome
    violations = outcome.violations
    return {
        "text": result.text,
        "outcome": outcome.kind.value,
        "boundary_check": result.boundary_check.value,
        "query_type": result.query_type.value,
        "confidence": result.confidence,
        "citations": [asdict(c) for c in result.citations],
        "violations": [
            {
                "layer": v.layer.value,
                "category": v.category.value,
                "offset": v.offset,
                "length": v.length,
                "reason": v.reason,
            }
            for v in violations
        ],
        "categories": category_counts(violations),
        "regenerate": isinstance(outcome, Blocked) and outcome.regenerate,
        "diff_spans": (
            _public_diff_spans(outcome.diff_spans) if isinstance(outcome, Rephrased) else None
        ),
    }


# ============================================================
# ROUTES
# ============================================================

@app.post("/filter", response_model=FilterResponse)
async def filter_candidate(request: FilterRequest):
    """Filter a generated response before it reaches the patient."""
    candidate = CandidateResponse(
        text=request.text,
        boundary_check=request.boundary_check,
        citations=_to_citations(request.citations),
        confidence=request.confidence,
        query_type=request.query_type,
    )
    return _serialize(orchestrator.filter_response(candidate))


@app.post("/filter/raw", response_model=FilterResponse)
async def filter_raw(request: RawFilterRequest):
    """Strip model artifacts, parse the boundary line, then filter."""
    candidate = prepare_candidate(
        request.raw_output,
        citations=_to_citations(request.citations),
        confidence=request.confidence,
        query_type=request.query_type,
    )
    return _serialize(orchestrator.filter_response(candidate))


@app.post("/sanitize", response_model=SanitizeResponse)
async def sanitize(request: SanitizeRequest):
    """Sanitize a patient query and return the delimited prompt fragment."""
    result = orchestrator.sanitize_input(request.text)
    return {
        "text": result.text,
        "was_modified": result.was_modified,
        "modifications": [
            {"kind": m.kind.value, "description": m.description}
            for m in result.modifications
        ],
        "prompt": wrap_query_for_prompt(result.text),
    }


@app.get("/patterns", response_model=PatternsResponse)
async def get_patterns():
    """Return every detection pattern's id, group, category and description."""
    registry = orchestrator.registry
    return {
        "core_version": settings.CORE_VERSION,
        "total_patterns": registry.pattern_count,
        "rephrase_rules": registry.rule_count,
        "patterns": registry.describe(),
    }


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check."""
    return {
        "status": "operational",
        "version": __version__,
        "core_version": settings.CORE_VERSION,
        "pattern_count": orchestrator.registry.pattern_count,
        "rephrase_rule_count": orchestrator.registry.rule_count,
    }


# --- Security + Version Headers Middleware ---
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-CareGuard-Version"] = __version__
    response.headers["X-Core-Version"] = settings.CORE_VERSION
    response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains; preload"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["Cache-Control"] = "no-store"
    return response


# --- Body Size Limit Middleware ---
_MAX_BODY_BYTES = 1_048_576  # 1 MB


@app.middleware("http")
async def enforce_body_size_limit(request: Request, call_next):
    """Reject requests over 1MB, by Content-Length or by actual body size."""
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > _MAX_BODY_BYTES:
        return JSONResponse(status_code=413, content={"detail": "Request body too large."})

    # Chunked bodies carry no Content-Length
    if request.method in ("POST", "PUT", "PATCH"):
        body = await request.body()
        if len(body) > _MAX_BODY_BYTES:
            return JSONResponse(status_code=413, content={"detail": "Request body too large."})

    return await call_next(request)


# --- Request Logging Middleware ---
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status and duration. Never bodies."""
    path = request.url.path
    if path == "/health":
        return await call_next(request)

    start = time.time()
    response = await call_next(request)
    duration_ms = round((time.time() - start) * 1000, 1)

    logger.info(
        f"{request.method} {path} {response.status_code} ({duration_ms}ms)",
        extra={
            "method": request.method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        },
    )
    return response
