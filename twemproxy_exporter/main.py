"""Twemproxy Exporter - FastAPI Application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from . import __version__
from .config import Settings, load_topology, parse_address, resolve_instance
from .metrics import MetricsSink
from .models.topology import Topology
from .polling import PollDriver, PollingScheduler
from .routers import build_metrics_router, stats_router


def create_app(settings: Settings, topology: Topology, sink: MetricsSink) -> FastAPI:
    """Wire the poll lane and the scrape endpoint around one metrics sink."""
    driver = PollDriver(
        topology,
        sink,
        settings.twemproxy_host,
        read_buffer_size=settings.read_buffer_size,
        connect_timeout=settings.connect_timeout,
    )
    scheduler = PollingScheduler(driver, settings.interval)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan - startup and shutdown events."""
        scheduler.start()

        yield

        await scheduler.stop()

    app = FastAPI(
        title="Twemproxy Exporter",
        description="Prometheus exporter for twemproxy (nutcracker) stats",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.sink = sink
    app.state.driver = driver
    app.state.scheduler = scheduler

    app.include_router(build_metrics_router(settings.metrics_path))
    app.include_router(stats_router, prefix="/api", tags=["stats"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        last_success = driver.last_success
        return {
            "status": "healthy" if driver.last_error is None else "degraded",
            "service": "twemproxy-exporter",
            "twemproxy_host": settings.twemproxy_host,
            "polling": scheduler.running,
            "state": driver.state.value,
            "last_success": last_success.isoformat() if last_success else None,
            "last_error": driver.last_error,
            "consecutive_failures": driver.consecutive_failures,
        }

    return app


def build_app(settings: Settings) -> FastAPI:
    """
    Load the topology and register metrics, then create the app.

    Raises ConfigError or SinkRegistrationError; both are fatal at startup.
    """
    parse_address(settings.twemproxy_host)
    topology = load_topology(settings.config_path)
    sink = MetricsSink(resolve_instance(settings))
    sink.register()
    return create_app(settings, topology, sink)
