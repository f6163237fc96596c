#!/usr/bin/env python3
"""
execbroker - Main Entry Point

This is the thin request/reply layer that:
1. Loads configuration
2. Initializes the dispatcher
3. Exposes the four client triggers over HTTP

All business logic is in the modules, following black box principles.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse

from execbroker import __version__
from execbroker.config.provider import ConfigProvider, EnvConfigProvider
from execbroker.logging_config import configure_logging, get_logging_config
from execbroker.modules.api import (
    ActionReply,
    ActionRequest,
    ConnectReply,
    ConnectRequest,
    ErrorInfo,
    ExecuteRequest,
    InfoRequest,
)
from execbroker.modules.client import ConfigurationError
from execbroker.modules.dispatcher import DispatcherModule

# Configuration provider (centralized config access)
config_provider: ConfigProvider = EnvConfigProvider()
api_config = config_provider.get_api_config()

configure_logging(api_config.log_level)
logger = logging.getLogger("execbroker.main")

# Module instances (initialized at startup)
dispatcher: Optional[DispatcherModule] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle - initialize and cleanup resources.
    """
    global dispatcher

    logger.info("Starting execbroker API...")
    dispatcher = DispatcherModule(config=config_provider.get_transport_config())
    if api_config.require_auth:
        logger.info(f"API key authentication enabled ({len(api_config.api_keys)} keys)")
    else:
        logger.warning("API_KEYS not set - client endpoints are unauthenticated")

    yield

    # No cross-request state: every client is released by its own request
    dispatcher = None
    logger.info("execbroker API shutdown complete")


app = FastAPI(
    title="execbroker API",
    description="Unified remote command execution over local, SSH, Docker and kubectl transports",
    version=__version__,
    lifespan=lifespan,
)


# Dependency injection helpers
async def verify_api_key(
    x_api_key: Optional[str] = Header(None, description="API key for authentication")
) -> Optional[str]:
    """Verify the API key when keys are configured."""
    if not api_config.require_auth:
        return None
    if not x_api_key or x_api_key not in api_config.api_keys:
        raise HTTPException(401, "Invalid API key")
    return x_api_key


def get_dispatcher() -> DispatcherModule:
    """Return the dispatcher created at startup."""
    if not dispatcher:
        raise HTTPException(503, "Service not initialized")
    return dispatcher


# Client Endpoints


@app.post("/client/connect", response_model=ConnectReply, response_model_exclude_none=True)
async def client_connect(
    request: ConnectRequest,
    _: Optional[str] = Depends(verify_api_key),
    broker: DispatcherModule = Depends(get_dispatcher),
):
    """
    Test a connection, optionally running setup.

    Returns:
        200: {connected, connection, data[, error]}
        400: Invalid connection descriptor
    """
    return await broker.connect(request)


@app.post("/client/execute")
async def client_execute(
    request: ExecuteRequest,
    _: Optional[str] = Depends(verify_api_key),
    broker: DispatcherModule = Depends(get_dispatcher),
):
    """
    Execute code on the target.

    Returns:
        200: Normalized output string, or an error object
        400: Invalid connection descriptor
    """
    return await broker.execute(request)


@app.post("/client/action", response_model=ActionReply, response_model_exclude_none=True)
async def client_action(
    request: ActionRequest,
    _: Optional[str] = Depends(verify_api_key),
    broker: DispatcherModule = Depends(get_dispatcher),
):
    """
    Run a named transport action.

    Returns:
        200: {type, result} or {type, error}
        400: Invalid connection descriptor
    """
    return await broker.action(request)


@app.post("/client/info")
async def client_info(
    request: InfoRequest,
    _: Optional[str] = Depends(verify_api_key),
    broker: DispatcherModule = Depends(get_dispatcher),
):
    """
    Fetch environment metadata.

    Returns:
        200: Info object, or an error object
        400: Invalid connection descriptor
    """
    return await broker.info(request)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy" if dispatcher else "starting",
        "version": __version__,
    }


# Error handlers


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request, exc):
    """Bad connection descriptors never reach a transport."""
    logger.warning(f"Rejected request: {exc}")
    return JSONResponse(
        status_code=400,
        content={"error": ErrorInfo.from_exception(exc).model_dump(mode="json")},
    )


def main() -> None:
    """Console entry point."""
    uvicorn.run(
        "execbroker.main:app",
        host=api_config.host,
        port=api_config.port,
        log_level=api_config.log_level.lower(),
        reload=api_config.debug,
        log_config=get_logging_config(api_config.log_level),
    )


if __name__ == "__main__":
    main()
