"""FastAPI application setup and routing for the Tool Broker API."""

import argparse
import logging
import sys
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from .config import BrokerConfig, ConfigManager, normalize_log_level
from .dispatch import InvalidRequestError, ToolDispatcher, parse_request
from .execution import ProcessRunner
from .models import ErrorResponse, HealthResponse
from .openapi import generate_openapi, server_url
from .registry import ToolRegistry
from .roots import RootResolver

logger = logging.getLogger(__name__)

TOOL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def format_uptime(start_time: float) -> str:
    """Format uptime as human readable string."""
    uptime_seconds = int(time.time() - start_time)
    days = uptime_seconds // 86400
    hours = (uptime_seconds % 86400) // 3600
    minutes = (uptime_seconds % 3600) // 60
    seconds = uptime_seconds % 60

    return f"{days}d {hours}h {minutes}m {seconds}s"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(exclude_none=True),
    )


def create_app(config: Optional[BrokerConfig] = None) -> FastAPI:
    """Create and configure FastAPI application."""
    if config is None:
        config = ConfigManager().load_config()

    # The generated document at "/" replaces FastAPI's own docs.
    app = FastAPI(
        title="Tool Broker",
        description="Local HTTP gateway for command-line code tools",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    registry = ToolRegistry(config.tools)
    resolver = RootResolver(config.default_root, config.roots)
    runner = ProcessRunner(config.output_character_limit, config.output_drop_line_limit)

    app.state.config = config
    app.state.registry = registry
    app.state.dispatcher = ToolDispatcher(registry, resolver, runner)
    app.state.start_time = time.time()

    if config.cors_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms:.1f}ms)"
        )
        return response

    @app.get("/", include_in_schema=False)
    async def openapi_document(request: Request) -> JSONResponse:
        """Describe all tool endpoints for automated callers."""
        document = generate_openapi(registry.list_tools().values(), server_url(request.headers))
        return JSONResponse(document)

    @app.get("/health", response_model=HealthResponse, include_in_schema=False)
    async def health_check() -> HealthResponse:
        """Report service status, version and uptime."""
        return HealthResponse(
            status="healthy",
            version=__version__,
            uptime=format_uptime(app.state.start_time),
            timestamp=datetime.now(timezone.utc),
        )

    @app.api_route("/{tool_path:path}", methods=TOOL_METHODS, include_in_schema=False)
    async def tool_endpoint(request: Request) -> Response:
        """Serve one configured tool."""
        if request.method == "OPTIONS":
            return Response(status_code=204)

        tool = registry.find_by_path(request.url.path)
        if tool is None:
            return _error(404, "unknown path")

        dispatcher: ToolDispatcher = app.state.dispatcher

        if tool.lists_roots and request.method == "GET":
            result = dispatcher.list_roots()
            return JSONResponse(status_code=result.status_code, content=result.body)

        if not tool.lists_roots and request.method == "POST":
            try:
                tool_request = parse_request(await request.body())
            except InvalidRequestError as e:
                logger.warning(f"{tool.name}: rejected request body: {e.__cause__}")
                return _error(400, str(e))
            result = await dispatcher.invoke(tool, tool_request)
            return JSONResponse(status_code=result.status_code, content=result.body)

        return _error(405, "method not allowed")

    return app


app = create_app()


def main():
    """Entry point for the tool-broker command."""
    import uvicorn

    parser = argparse.ArgumentParser(description="Start the Tool Broker service")
    parser.add_argument("--config", default=None, help="JSON or TOML roots/tools file")
    parser.add_argument("--host", default=None, help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    parser.add_argument("--log-level", default=None, help="Logging level")
    args = parser.parse_args()

    try:
        config = ConfigManager().load_config(args.config)
        log_level = normalize_log_level(args.log_level) if args.log_level else None
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    overrides = {
        key: value
        for key, value in (("host", args.host), ("port", args.port), ("log_level", log_level))
        if value is not None
    }
    if overrides:
        config = config.model_copy(update=overrides)

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    logger.info(f"Starting Tool Broker on {config.host}:{config.port}")
    logger.info(f"Default root: {config.default_root}")
    logger.info(
        f"Output limits: {config.output_character_limit} characters, "
        f"{config.output_drop_line_limit} per line"
    )

    try:
        uvicorn.run(
            create_app(config),
            host=config.host,
            port=config.port,
            log_level=config.log_level.lower(),
        )
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Server startup failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
