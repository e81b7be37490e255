"""
Regime API Routes
Read-only access to snapshots: today, history, explain
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from regime_engine.core.errors import RegimeNotReadyError
from regime_engine.services.regime_service import RegimeService
from regime_engine.utils.time import parse_iso_date

logger = logging.getLogger(__name__)
router = APIRouter()


def _service(request: Request) -> RegimeService:
    service = getattr(request.app.state, "regime_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail={"code": "NOT_READY", "message": "Service not initialized"})
    return service


def _require_seed(service: RegimeService) -> None:
    status = service.seed_status()
    if not status.is_ready:
        raise HTTPException(
            status_code=503,
            detail={
                "code": "NOT_SEEDED",
                "message": "Replay seed file is missing or empty",
                "exists": status.exists,
                "is_empty": status.is_empty,
            },
        )


def _parse_date(value: Optional[str], field: str) -> Optional[date]:
    if value is None:
        return None
    try:
        return parse_iso_date(value)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail={"code": "INVALID_DATE_FORMAT", "message": f"{field} must be YYYY-MM-DD"},
        )


@router.get("/today")
async def get_today(request: Request):
    """
    Today's regime snapshot

    Replay row on or before the cutover, computed afterwards; falls back
    to the last persisted snapshot marked stale.
    """
    service = _service(request)
    _require_seed(service)
    try:
        snapshot = await service.get_today()
    except RegimeNotReadyError as e:
        logger.error(f"Regime not ready: {e.reason}")
        raise HTTPException(status_code=503, detail={"code": RegimeNotReadyError.code, "reason": e.reason})
    return snapshot.to_dict()


@router.get("/history")
async def get_history(
    request: Request,
    startDate: Optional[str] = Query(None),
    endDate: Optional[str] = Query(None),
):
    """Snapshots in [startDate, endDate], ascending by date"""
    service = _service(request)
    _require_seed(service)

    start = _parse_date(startDate, "startDate")
    end = _parse_date(endDate, "endDate")
    if start is not None and end is not None and start > end:
        raise HTTPException(
            status_code=400,
            detail={"code": "INVALID_RANGE", "message": "startDate must be on or before endDate"},
        )

    rows = await service.get_history(start, end)
    return {
        "count": len(rows),
        "start_date": start.isoformat() if start else None,
        "end_date": end.isoformat() if end else None,
        "rows": [row.to_dict() for row in rows],
    }


@router.get("/explain")
async def explain(request: Request, target_date: Optional[str] = Query(None, alias="date")):
    """Snapshot for a date with agreement statistics and trend"""
    service = _service(request)
    _require_seed(service)

    if not target_date:
        raise HTTPException(status_code=400, detail={"code": "MISSING_DATE", "message": "date is required"})
    target = _parse_date(target_date, "date")

    result = await service.explain(target)
    if result is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "DATE_NOT_FOUND", "message": f"No snapshot for {target.isoformat()}"},
        )
    return result
