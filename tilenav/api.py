"""FastAPI routes for path and closest-point queries.

All request and response points use caller frame (`z` up); conversion to
and from model frame happens exactly once, here.

Endpoints:
- `POST /path`: walkable polyline between two points.
- `POST /closest`: snap each point onto the walkable surface.
- `GET /health`: liveness plus loaded-map summary.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from starlette.exceptions import HTTPException as StarletteHTTPException

from tilenav.coords import to_caller_frame, to_model_frame
from tilenav.navmesh import NavMeshError
from tilenav.resolver import PathResolver
from tilenav.utils import point_to_dict, to_serializable_points

logger = logging.getLogger(__name__)


class WorldPoint(BaseModel):
    """Caller-frame coordinate; NaN and infinities are rejected as malformed input."""

    model_config = ConfigDict(allow_inf_nan=False)

    x: float
    y: float
    z: float

    def as_tuple(self) -> tuple[float, float, float]:
        return self.x, self.y, self.z


class PathRequest(BaseModel):
    """Request payload for a path query."""

    start: WorldPoint
    end: WorldPoint


class ClosestPoint(WorldPoint):
    """Snapped point; `found` is False when no walkable surface was in range."""

    found: bool


def _format_validation_error(exc: RequestValidationError) -> str:
    parts: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", ()) if item != "body")
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "Malformed request body"


def create_app(resolver: PathResolver, map_id: str = "") -> FastAPI:
    """Create the FastAPI application around a ready `PathResolver`."""
    app = FastAPI(title="tilenav API", version="1.0.0")

    @app.exception_handler(RequestValidationError)
    async def validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": _format_validation_error(exc)})

    @app.exception_handler(StarletteHTTPException)
    async def http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.get("/health")
    def health() -> dict[str, Any]:
        """Health endpoint with loaded-map metadata."""
        return {"status": "ok", "map_id": map_id, "tiles": resolver.mesh.tile_count}

    @app.post("/path", response_model=list[WorldPoint])
    def find_path(payload: PathRequest, response: Response) -> list[dict[str, float]]:
        """Compute a walkable path; an empty list means no path exists."""
        start = to_model_frame(payload.start.as_tuple())
        end = to_model_frame(payload.end.as_tuple())

        try:
            result = resolver.find_path(start, end)
        except NavMeshError as exc:
            logger.exception("Path query failed", extra={"map_id": map_id, "endpoint": "/path"})
            raise HTTPException(status_code=500, detail=f"Path query failed: {exc}") from exc
        except Exception as exc:  # pragma: no cover - safety net
            logger.exception("Unexpected pathfinding error", extra={"map_id": map_id, "endpoint": "/path"})
            raise HTTPException(status_code=500, detail=f"Unexpected pathfinding error: {exc}") from exc

        response.headers["X-Path-Partial"] = "true" if result.partial else "false"
        return to_serializable_points(to_caller_frame(p) for p in result.points)

    @app.post("/closest", response_model=list[ClosestPoint])
    def closest_points(payload: list[WorldPoint]) -> list[dict[str, Any]]:
        """Snap every point independently; output length always equals input length."""
        out: list[dict[str, Any]] = []
        try:
            for point in payload:
                snap = resolver.closest_point(to_model_frame(point.as_tuple()))
                if snap is None:
                    out.append({**point.model_dump(), "found": False})
                    continue
                out.append({**point_to_dict(to_caller_frame(snap.point)), "found": True})
        except NavMeshError as exc:
            logger.exception("Closest-point query failed", extra={"map_id": map_id, "endpoint": "/closest"})
            raise HTTPException(status_code=500, detail=f"Closest-point query failed: {exc}") from exc
        except Exception as exc:  # pragma: no cover - safety net
            logger.exception("Unexpected closest-point error", extra={"map_id": map_id, "endpoint": "/closest"})
            raise HTTPException(status_code=500, detail=f"Unexpected closest-point error: {exc}") from exc

        return out

    return app
