"""RWA signal service — application entry point.

Boots the FastAPI server, owns the poller lifecycle and provides the CLI
entry point.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from rwa_signals.api.operations import OperationDesk, build_desk
from rwa_signals.api.routers import router
from rwa_signals.config import Config, load_config

logger = logging.getLogger("rwa_signals")


def create_app(
    config: Optional[Config] = None,
    desk: Optional[OperationDesk] = None,
    start_poller: bool = True,
) -> FastAPI:
    """Build the FastAPI app.

    Args:
        config: Configuration; loaded from the environment when omitted.
        desk: Pre-built desk (tests); built from *config* when omitted.
        start_poller: Run the background price poller while serving.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if desk is not None:
            app.state.desk = desk
        else:
            app.state.desk = build_desk(config or load_config())
        poller = app.state.desk.poller
        if start_poller and poller is not None:
            poller.start()
        try:
            yield
        finally:
            if poller is not None:
                await poller.stop()

    app = FastAPI(title="RWA Signal Service", version="0.1.0", lifespan=lifespan)
    app.include_router(router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and serve the API with uvicorn."""
    import argparse

    import uvicorn

    config = load_config()

    parser = argparse.ArgumentParser(description="RWA price and RSI signal service")
    parser.add_argument("--host", default=config.host, help=f"Bind address (default: {config.host})")
    parser.add_argument(
        "--port", type=int, default=config.http_port,
        help=f"HTTP port (default: {config.http_port})",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    logger.info("Starting RWA signal service on %s:%d", args.host, args.port)
    uvicorn.run(create_app(config), host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    _run_cli()
