"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.shipments import router as shipments_router
from routes.milestones import router as milestones_router
from routes.webhooks import router as webhooks_router
from routes.cargoes_flow import router as cargoes_flow_router

__all__ = [
    "shipments_router",
    "milestones_router",
    "webhooks_router",
    "cargoes_flow_router",
]
