# API routers
from .metrics import build_metrics_router
from .stats import router as stats_router

__all__ = ["build_metrics_router", "stats_router"]
