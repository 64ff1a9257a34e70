"""Scrape and alert reconfiguration endpoints."""

import logging

from fastapi import APIRouter, Depends, Query, Request, Response

from ..service import MonitorService
from .deps import get_service, request_params
from .models import ReconfigureResponse

logger = logging.getLogger(__name__)

reconfigure_router = APIRouter(tags=["reconfigure"])


@reconfigure_router.api_route("/reconfigure", methods=["GET", "POST"], response_model=ReconfigureResponse)
async def reconfigure(
    request: Request,
    response: Response,
    params: dict[str, str] = Depends(request_params),
    service: MonitorService = Depends(get_service),
) -> ReconfigureResponse:
    """Replace the scrape and alerts of a service."""
    logger.info("Processing %s", request.url)
    result = await service.reconfigure(params)
    response.status_code = result.status
    return ReconfigureResponse.from_result(result)


@reconfigure_router.api_route("/remove", methods=["GET", "DELETE"], response_model=ReconfigureResponse)
async def remove(
    request: Request,
    response: Response,
    service_name: str = Query("", alias="serviceName"),
    service: MonitorService = Depends(get_service),
) -> ReconfigureResponse:
    """Remove the scrape and non-persistent alerts of a service."""
    logger.info("Processing %s", request.url)
    result = await service.remove(service_name)
    response.status_code = result.status
    return ReconfigureResponse.from_result(result)


@reconfigure_router.get("/ping")
async def ping() -> dict:
    """Liveness check."""
    return {"status": "OK"}
