"""API routers for the monitor service."""

from .node import node_router
from .reconfigure import reconfigure_router

__all__ = ["reconfigure_router", "node_router"]
