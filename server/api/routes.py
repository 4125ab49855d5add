"""API routes mounted under ``/api`` ahead of the SPA catch-all."""

from __future__ import annotations

from fastapi import APIRouter, FastAPI
from pydantic import BaseModel

from server.web.config import Settings


class HealthPayload(BaseModel):
    status: str
    environment: str


def configure_api_routes(app: FastAPI, settings: Settings) -> None:
    router = APIRouter(prefix="/api")

    @router.get("/health", response_model=HealthPayload)
    def health() -> HealthPayload:
        """Simple readiness probe used by orchestrators and CLI tooling."""
        return HealthPayload(status="ok", environment=settings.environment or "default")

    app.include_router(router)
