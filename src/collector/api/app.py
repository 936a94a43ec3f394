"""FastAPI application factory for the snapshot query API."""

from typing import Any

from fastapi import FastAPI

from collector.api import routes


def create_app(lifespan: Any = None) -> FastAPI:
    """Create the query API.

    Route handlers read ``app.state.store`` (a SnapshotStore) and
    ``app.state.watcher`` (a CycleWatcher, optional). Both are set by the
    caller, usually from the lifespan.

    Args:
        lifespan: Optional async context manager for startup/shutdown.
    """
    app = FastAPI(title="Market Snapshot Collector", lifespan=lifespan)
    app.state.store = None
    app.state.watcher = None
    app.include_router(routes.router)
    return app
