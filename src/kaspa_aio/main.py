import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kaspa_aio import __version__
from kaspa_aio.config import get_config, save_config
from kaspa_aio.exceptions import AppBaseError
from kaspa_aio.logger import get_logger
from kaspa_aio.routers import catalog_api as catalog_router
from kaspa_aio.routers import config_api as config_router
from kaspa_aio.routers import install_api as install_router
from kaspa_aio.routers import resources_api as resources_router
from kaspa_aio.routers import versions_api as versions_router
from kaspa_aio.routers import web_sockets_api as progress_router

# Standard logging is only used by uvicorn; application logs go through structlog
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan events."""
    config = get_config()
    config.paths.data_dir.mkdir(parents=True, exist_ok=True)
    yield


app = FastAPI(title="Kaspa All-in-One Installer", version=__version__, lifespan=lifespan)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppBaseError)
async def app_error_handler(request: Request, exc: AppBaseError) -> JSONResponse:
    """Serialise application errors with their recommended status code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/api/hello", operation_id="hello_api_hello_get")
async def hello_get() -> dict[str, str]:
    """Return a simple hello message with version info."""
    return {"message": "Hello from the Kaspa All-in-One installer!", "version": __version__}


# Register routers
app.include_router(catalog_router.router)
app.include_router(resources_router.router)
app.include_router(config_router.router)
app.include_router(install_router.router)
app.include_router(progress_router.router)
app.include_router(versions_router.router)


def run_server(port: int | None = None, host: str | None = None) -> None:
    """Run the installer API server.

    Args:
        port: Optional port number to override config. If provided, will be saved to config.
        host: Optional bind address for this run only.
    """
    config = get_config()

    # If port is provided via CLI, update and save config
    if port is not None and port != config.server.port:
        logger.info(f"Port override detected, updating config ({config.server.port} -> {port})")
        config.server.port = port
        save_config(config)

    uvicorn.run(app, host=host or config.server.host, port=config.server.port)


def main() -> None:
    """Main entry point with CLI argument parsing."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Kaspa All-in-One - installation and configuration engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  kaspa-aio                      # Start with default/saved port
  kaspa-aio --port 9000          # Start on port 9000 and save it
  kaspa-aio --host 0.0.0.0       # Listen on every interface
        """,
    )

    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number to run the server on (will be saved to config)",
    )

    parser.add_argument(
        "--host",
        metavar="HOST",
        help="Address to bind to (default from config)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"kaspa-aio {__version__}",
    )

    args = parser.parse_args()

    run_server(port=args.port, host=args.host)


if __name__ == "__main__":
    main()
