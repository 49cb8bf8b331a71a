#!/usr/bin/env python3
"""
check-certs - FastAPI report server
"""
import logging
import os
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from .. import __version__
from .metrics import get_metrics_output, get_metrics_content_type, set_app_info

logger = logging.getLogger(__name__)

DEFAULT_REPORT_PATH = "results.csv"


class HealthStatus(BaseModel):
    status: str
    timestamp: str
    report: str


def create_app(report_path: str = DEFAULT_REPORT_PATH) -> FastAPI:
    """
    Build the app serving the latest CSV report

    Args:
        report_path: Report file written by the last scan run

    Returns:
        FastAPI application
    """
    app = FastAPI(
        title="check-certs",
        description="Latest TLS certificate scan results",
        version=__version__,
    )
    app.state.report_path = report_path
    set_app_info(version=__version__)

    @app.get("/results.csv")
    async def get_results(request: Request):
        path = request.app.state.report_path
        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()
        except OSError as e:
            logger.error(f"Failed to read report {path}: {e}")
            return PlainTextResponse(f"{os.path.basename(path)} file error {e}", status_code=500)
        return Response(content=content, media_type="text/csv")

    @app.get("/metrics", include_in_schema=False)
    async def prometheus_metrics():
        """Prometheus metrics endpoint."""
        return Response(content=get_metrics_output(), media_type=get_metrics_content_type())

    @app.get("/health", response_model=HealthStatus)
    async def health_check(request: Request):
        path = request.app.state.report_path
        return HealthStatus(
            status="healthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
            report="present" if os.path.exists(path) else "missing",
        )

    return app


def serve(report_path: str = DEFAULT_REPORT_PATH, host: str = "0.0.0.0", port: int = 8080,
          app: Optional[FastAPI] = None):
    """Serve the report until interrupted"""
    import uvicorn

    logger.info(f"Serving {report_path} on http://{host}:{port}/results.csv")
    uvicorn.run(app or create_app(report_path), host=host, port=port)
