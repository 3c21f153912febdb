"""Liveness endpoint."""

import time

from fastapi import APIRouter, Request

router = APIRouter(prefix="/api")


@router.get("/health")
async def health(request: Request):
    return {
        "status": "ok",
        "channels": len(request.app.state.registry),
        "uptime_seconds": round(time.time() - request.app.state.start_time, 1),
    }
