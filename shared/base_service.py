"""
FastAPI service shell shared by the storefront processes.

Subclasses register their own routes and override ``start``, ``stop`` and
``_check_dependencies``; this class owns the app lifespan, the request
middleware, ``/health``, ``/metrics`` and the error envelope.
"""

import os
import time
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST

from shared.config import ServiceConfig, get_config
from shared.errors import StorefrontException
from shared.logging import configure_logging, get_logger, request_context
from shared.metrics import get_metrics_collector

CACHE_HEADERS = ["X-Cache-Status", "X-Cache-Key", "X-Cache-TTL", "X-Data-Source"]

# Worst dependency state wins.
_HEALTH_RANK = {"ok": 0, "degraded": 1, "error": 2}


class BaseService:

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        configure_logging(service_name, self.config.log_level, json_logs=self.config.env != "local")

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()

    def _create_app(self) -> FastAPI:
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            await self.start()
            try:
                yield
            finally:
                await self.stop()

        local = self.config.env == "local"
        return FastAPI(
            title=f"CozyBerries {self.service_name.title()}",
            version="1.0.0",
            docs_url="/docs" if local else None,
            redoc_url="/redoc" if local else None,
            lifespan=lifespan,
        )

    def _setup_middleware(self):
        origins = [o.strip() for o in self.config.cors_origins.split(",") if o.strip()]
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=CACHE_HEADERS + ["X-Request-ID"],
        )

        @self.app.middleware("http")
        async def observe_request(request: Request, call_next):
            start = time.perf_counter()
            with request_context(request.headers.get("X-Request-ID")) as request_id:
                response = await call_next(request)
                duration = time.perf_counter() - start

                route = request.scope.get("route")
                endpoint = getattr(route, "path", request.url.path)
                cache_status = response.headers.get("X-Cache-Status")

                self.metrics.record_http_request(
                    request.method, endpoint, response.status_code, duration, cache_status=cache_status
                )
                self.logger.info(
                    "HTTP request",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    cache_status=cache_status,
                    duration_ms=round(duration * 1000, 2),
                )
            response.headers["X-Request-ID"] = request_id
            return response

    def _setup_routes(self):

        @self.app.get("/health")
        async def health_check():
            try:
                dependencies = await self._check_dependencies()
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={"service": self.service_name, "status": "error", "error": str(e)},
                )

            status = max(dependencies.values(), key=lambda state: _HEALTH_RANK.get(state, 2), default="ok")
            self.metrics.record_health_check(status)
            return JSONResponse(
                status_code=503 if status == "error" else 200,
                content={
                    "service": self.service_name,
                    "status": status,
                    "uptime_seconds": round(time.time() - self._start_time, 3),
                    "dependencies": dependencies,
                    "version": "1.0.0",
                    "commit": os.getenv("GIT_COMMIT", "unknown"),
                },
            )

        @self.app.get("/metrics")
        async def metrics_endpoint():
            return Response(content=self.metrics.export(), media_type=CONTENT_TYPE_LATEST)

        @self.app.exception_handler(StorefrontException)
        async def storefront_exception_handler(request: Request, exc: StorefrontException):
            log = self.logger.error if exc.status_code >= 500 else self.logger.warning
            log("Request failed", code=exc.code, message=exc.message, details=exc.details, path=request.url.path)
            self.metrics.record_error(exc.code)
            return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump())

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            return JSONResponse(
                status_code=500,
                content={"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}},
            )

    async def start(self):
        """Acquire external resources."""

    async def stop(self):
        """Release external resources."""

    async def _check_dependencies(self) -> Dict[str, str]:
        """Map each dependency to ``ok``, ``degraded`` or ``error``."""
        return {}

    def run(self):
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower(),
        )
