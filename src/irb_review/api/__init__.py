"""HTTP routers."""
from __future__ import annotations

from .evaluation import router as evaluation_router

__all__ = ["evaluation_router"]
