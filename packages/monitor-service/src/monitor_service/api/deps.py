"""Shared dependencies for the API routers."""

from fastapi import Request

from ..service import MonitorService


async def get_service(request: Request) -> MonitorService:
    """Dependency to get the MonitorService attached to the app."""
    return request.app.state.service


async def request_params(request: Request) -> dict[str, str]:
    """Query parameters merged with form fields (form wins)."""
    params = dict(request.query_params)
    if request.method in ("POST", "PUT"):
        form = await request.form()
        params.update({k: v for k, v in form.items() if isinstance(v, str)})
    return params
