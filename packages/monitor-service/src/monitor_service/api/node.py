"""Per-node label endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from ..service import MonitorService
from .deps import get_service, request_params
from .models import NodeResponse

logger = logging.getLogger(__name__)

node_router = APIRouter(prefix="/node", tags=["node"])


def _require_id(params: dict[str, str]) -> str:
    node_id = params.get("id", "")
    if not node_id:
        raise HTTPException(status_code=400, detail="id parameter is required")
    return node_id


@node_router.get("/reconfigure", response_model=NodeResponse)
async def node_reconfigure(
    request: Request,
    response: Response,
    params: dict[str, str] = Depends(request_params),
    service: MonitorService = Depends(get_service),
) -> NodeResponse:
    """Store the allow-listed labels of a node."""
    logger.info("Processing %s", request.url)
    node_id = _require_id(params)
    result = await service.node_reconfigure(node_id, params)
    response.status_code = result.status
    return NodeResponse.from_result(result)


@node_router.api_route("/remove", methods=["GET", "DELETE"], response_model=NodeResponse)
async def node_remove(
    request: Request,
    response: Response,
    params: dict[str, str] = Depends(request_params),
    service: MonitorService = Depends(get_service),
) -> NodeResponse:
    """Forget the labels of a node."""
    logger.info("Processing %s", request.url)
    node_id = _require_id(params)
    result = await service.node_remove(node_id)
    response.status_code = result.status
    return NodeResponse.from_result(result)
