"""
HTTP API adapter for the routewise engine.

Architectural role:
- Expose the routing pipeline over JSON HTTP endpoints.
- Enforce adapter-level input validation with pydantic request models.
- Delegate all parsing/routing/validation work to `RoutewiseEngine`.

Endpoint responsibilities:
- `GET /v1/servers`: list registrations with status and metrics.
- `POST /v1/servers`: register or replace a server capability.
- `DELETE /v1/servers/{name}`: unregister a server.
- `POST /v1/servers/{name}/heartbeat`: mark a server healthy.
- `POST /v1/query`: run one request through the pipeline.
- `GET /v1/suggestions`: completions for a partial query.
- `POST /v1/feedback`: attach user feedback to a recorded interaction.
- `GET /v1/optimizations`: current optimization suggestions.

Input validation behavior:
- Malformed payloads -> HTTP 422 (FastAPI default).
- Blank query text -> HTTP 400.
- Unknown server on delete/heartbeat -> HTTP 404.
- Unknown interaction id on feedback -> HTTP 404.

Error handling strategy:
- Pipeline failures are reported inside the `QueryResult` body
  (`success: false`), not as HTTP errors.

Side effects:
- Importing this module builds nothing; each `create_app()` call owns one
  engine. Serve with `uvicorn --factory routewise.api.http_api:create_app`.
- The engine's background sweeps run for the application lifespan.
- Emits debug logs only when `DEBUG == "true"`.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Literal

from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from routewise.core.engine import RoutewiseEngine
from routewise.core.settings import DEBUG
from routewise.core.types import Feedback, RateLimit, ServerCapability


logger = logging.getLogger(__name__)


# ============================================================
# Request Schema
# ============================================================

class RateLimitModel(BaseModel):
    requests: int = Field(gt=0)
    window_ms: int = Field(gt=0)


class CapabilityModel(BaseModel):
    protocol: Literal["mcp", "rest", "soap", "graphql", "websocket", "lambda"]
    domains: list[str] = []
    entities: list[str] = []
    operations: list[str] = []
    description: str = ""
    rate_limit: RateLimitModel | None = None
    package: str | None = None
    url: str | None = None

    def to_capability(self) -> ServerCapability:
        return ServerCapability(
            protocol=self.protocol,
            domains=tuple(self.domains),
            entities=tuple(self.entities),
            operations=tuple(self.operations),
            description=self.description,
            rate_limit=(
                RateLimit(self.rate_limit.requests, self.rate_limit.window_ms)
                if self.rate_limit else None
            ),
            package=self.package,
            url=self.url,
        )


class RegisterServerRequest(BaseModel):
    name: str = Field(min_length=1)
    capability: CapabilityModel


class QueryRequest(BaseModel):
    query: str
    context: dict[str, Any] | None = None


class FeedbackRequest(BaseModel):
    interaction_id: str
    helpful: bool
    rating: int | None = Field(default=None, ge=1, le=5)
    comment: str | None = None
    correct_server: str | None = None
    correct_action: str | None = None


# ============================================================
# Application Factory
# ============================================================

def create_app(engine: RoutewiseEngine | None = None) -> FastAPI:
    """
    Build the FastAPI application around one engine instance.

    Args:
        engine: Preconfigured engine. A default engine (environment settings,
            default catalog, dry-run execution) is created when omitted.
    """
    engine = engine or RoutewiseEngine()

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        await engine.start()
        try:
            yield
        finally:
            await engine.stop()

    app = FastAPI(title="routewise", lifespan=lifespan)
    app.state.engine = engine

    @app.get("/v1/servers")
    def list_servers():
        return {
            "object": "list",
            "data": [reg.to_dict() for reg in engine.list_servers()],
        }

    @app.post("/v1/servers", status_code=201)
    def register_server(request: RegisterServerRequest):
        registration = engine.register_server(request.name, request.capability.to_capability())
        return registration.to_dict()

    @app.delete("/v1/servers/{name}")
    def unregister_server(name: str):
        if not engine.unregister_server(name):
            return JSONResponse(status_code=404, content={"error": f"Unknown server: {name}"})
        return {"name": name, "unregistered": True}

    @app.post("/v1/servers/{name}/heartbeat")
    def heartbeat(name: str):
        if engine.registry.get_server(name) is None:
            return JSONResponse(status_code=404, content={"error": f"Unknown server: {name}"})
        engine.registry.mark_healthy(name)
        return engine.registry.get_server(name).to_dict()

    @app.post("/v1/query")
    async def run_query(request: QueryRequest):
        if not request.query.strip():
            return JSONResponse(status_code=400, content={"error": "Query text is empty"})

        if DEBUG:
            logger.debug("[API DEBUG] query=%r context=%r", request.query, request.context)

        result = await engine.query(request.query, request.context)
        return result.to_dict()

    @app.get("/v1/suggestions")
    def suggestions(q: str = "", limit: int = Query(default=5, ge=1, le=50)):
        return {"query": q, "suggestions": engine.get_suggestions(q, limit)}

    @app.post("/v1/feedback")
    async def feedback(request: FeedbackRequest):
        recorded = await engine.record_feedback(
            request.interaction_id,
            Feedback(
                helpful=request.helpful,
                rating=request.rating,
                comment=request.comment,
                correct_server=request.correct_server,
                correct_action=request.correct_action,
            ),
        )
        if not recorded:
            return JSONResponse(
                status_code=404,
                content={"error": f"Unknown interaction: {request.interaction_id}"},
            )
        return {"interaction_id": request.interaction_id, "recorded": True}

    @app.get("/v1/optimizations")
    def optimizations():
        return {
            "object": "list",
            "data": [s.to_dict() for s in engine.get_optimization_suggestions()],
        }

    return app
