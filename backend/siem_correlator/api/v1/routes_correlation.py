# backend/siem_correlator/api/v1/routes_correlation.py
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from siem_correlator.api.deps import get_correlation_engine
from siem_correlator.core.security import Principal, require_admin
from siem_correlator.schemas.correlation import CorrelationRunRequest, CorrelationRunResponse
from siem_correlator.services.correlation.correlation_engine import CorrelationEngine

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/correlation",
    tags=["correlation", "siem"],
)


async def _parse_run_request(request: Request) -> CorrelationRunRequest:
    """
    An empty or unparsable body falls back to defaults; a well-formed body
    with invalid values is rejected.
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = {}
    if not isinstance(body, dict):
        body = {}

    try:
        return CorrelationRunRequest.model_validate(body)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=jsonable_encoder(e.errors(include_url=False)),
        )


@router.post(
    "/run",
    response_model=CorrelationRunResponse,
    summary="Run the correlation engine over recent telemetry",
)
async def run_correlation(
    request: Request,
    principal: Principal = Depends(require_admin),
    engine: CorrelationEngine = Depends(get_correlation_engine),
):
    """
    Load recent security events, endpoint telemetry and block-list state,
    evaluate every enabled correlation rule, and persist / notify on the
    resulting incidents.
    """
    payload = await _parse_run_request(request)
    logger.info(
        "Correlation run requested by %s (window=%sh, rules=%s)",
        principal.subject, payload.time_window_hours, payload.rule_ids or "all",
    )

    try:
        return await engine.run(payload.time_window_hours, payload.rule_ids)
    except Exception as e:
        logger.exception("Correlation run failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": str(e)},
        )
