from __future__ import annotations

from datetime import UTC, datetime

from fastapi import FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..config import get_settings
from ..observability.metrics import metrics_middleware_factory
from ..services.telemetry_sink import list_recent_events
from .routers.chat import router as chat_router
from .routers.export import router as export_router
from .routers.projects import router as projects_router


settings = get_settings()  # also loads .env (OPENAI_API_KEY, OPENAI_MODEL, etc.)

app = FastAPI(title="AI BA Assistant API", version="0.1.0")

# Observability: request latency histogram
app.middleware("http")(metrics_middleware_factory())


# Every error body is {"error": "..."}
@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse({"error": "Invalid request: " + "; ".join(parts)}, status_code=400)


# Routers
app.include_router(chat_router)
app.include_router(export_router)
app.include_router(projects_router)

# Same routers under /api, matching the browser client's paths
app.include_router(chat_router, prefix="/api")
app.include_router(export_router, prefix="/api")
app.include_router(projects_router, prefix="/api")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Project-Id"],
)


def _health() -> dict:
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        "components": {
            "api": "ok",
            "llm": "configured" if settings.api_key else "missing_api_key",
            "model": settings.model,
        },
    }


@app.get("/")
def root():
    return {"name": "AI BA Assistant API", "version": "0.1.0"}


@app.get("/health")
def health():
    return _health()


@app.get("/api/health")
def api_health():
    return _health()


@app.get("/metrics")
def metrics() -> Response:
    # Expose Prometheus metrics
    data = generate_latest(REGISTRY)
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)


@app.get("/diag/events")
def recent_events(limit: int = Query(50, ge=1, le=200)):
    return [{"name": e.name, "properties": e.properties} for e in list_recent_events(limit)]
