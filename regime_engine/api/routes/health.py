from typing import Any, Dict, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: Optional[str] = None
    cutover_date: Optional[str] = None
    seed: Optional[Dict[str, bool]] = None
    freshness: Optional[Dict[str, Any]] = None


@router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """OK / WARN / NOT_READY from the age of the latest snapshot"""
    service = getattr(request.app.state, "regime_service", None)
    if service is None:
        return HealthResponse(status="NOT_READY")
    return HealthResponse(**await service.health())
