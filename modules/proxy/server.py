"""HTTP surface for the proxy function."""

from __future__ import annotations

import logging
import time
from typing import Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from config.settings import PROXY_ROUTE, AppConfig
from modules.generation.code_generator import CodeGenerator
from modules.proxy.handler import handle_generate_request

logger = logging.getLogger(__name__)

LEGACY_ROUTE = "/.netlify/functions/generate-arduino-code"
ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


def build_router(config: AppConfig, generator: Optional[CodeGenerator] = None) -> APIRouter:
    """Return a router exposing the proxy function on every HTTP method."""
    router = APIRouter()
    code_generator = generator or CodeGenerator()

    async def generate_arduino_code(request: Request) -> JSONResponse:
        body = await request.body() if request.method == "POST" else None
        response = await run_in_threadpool(
            handle_generate_request,
            request.method,
            body,
            generator=code_generator,
            default_model=config.default_model,
        )
        return JSONResponse(status_code=response.status_code, content=response.body, headers=response.headers)

    for path in (PROXY_ROUTE, LEGACY_ROUTE):
        router.add_api_route(path, generate_arduino_code, methods=ALL_METHODS, include_in_schema=path == PROXY_ROUTE)
    return router


def build_server(config: AppConfig, generator: Optional[CodeGenerator] = None) -> FastAPI:
    """Create the FastAPI application hosting the proxy function."""
    app = FastAPI(
        title="Arduino Code Forge",
        description="Proxy between the Arduino Code Forge UI and the generation API",
        version="1.0.0",
    )

    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.info(
            "Request completed: %s %s - Status: %s - Time: %.4fs",
            request.method,
            request.url.path,
            response.status_code,
            process_time,
        )
        return response

    app.include_router(build_router(config, generator))
    return app
