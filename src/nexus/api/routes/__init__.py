"""
API route modules.
"""

from nexus.api.routes.bulk import router as bulk_router
from nexus.api.routes.companies import router as companies_router
from nexus.api.routes.status import router as status_router

__all__ = [
    "bulk_router",
    "companies_router",
    "status_router",
]
