"""API route modules."""
from dropship.api.routes.fulfillment import router as fulfillment_router
from dropship.api.routes.imports import router as imports_router

__all__ = ["fulfillment_router", "imports_router"]
