"""Prometheus scrape route."""

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST


def scrape_metrics(request: Request):
    """Serve the last published metrics, stale or not."""
    return Response(request.app.state.sink.render(), media_type=CONTENT_TYPE_LATEST)


def build_metrics_router(path: str = "/metrics") -> APIRouter:
    """Router serving the scrape endpoint at a configurable path."""
    router = APIRouter()
    router.add_api_route(path, scrape_metrics, methods=["GET"], include_in_schema=False)
    return router
