"""Stats and topology API routes."""

from fastapi import APIRouter, HTTPException, Request

from ..models.stats import ProxyStats
from ..models.topology import Topology

router = APIRouter()


@router.get("/stats", response_model=ProxyStats)
async def get_stats(request: Request):
    """Get the most recently published stats snapshot."""
    stats = request.app.state.driver.last_stats
    if stats is None:
        raise HTTPException(status_code=503, detail="No stats polled yet")
    return stats


@router.get("/topology", response_model=Topology)
async def get_topology(request: Request):
    """Get the server pools the exporter checks stats against."""
    return request.app.state.driver.topology
