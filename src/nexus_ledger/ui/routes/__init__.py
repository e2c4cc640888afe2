"""API route registrations."""

from .ledger import router as ledger_router
from .planning import router as planning_router

__all__ = ["ledger_router", "planning_router"]
