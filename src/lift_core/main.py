"""LIFT FastAPI application entry point."""
import logging
from typing import Optional

from fastapi import FastAPI

from .api.routes import router as api_router
from .insights.config import ReportConfig, load_report_config


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


def create_app(report_config: Optional[ReportConfig] = None) -> FastAPI:
    """Create the LIFT API app.

    Report settings are loaded once and shared with routes via app.state.
    """
    app = FastAPI(
        title="LIFT API",
        version="0.1.0",
        description="Pre/post conversion lift reports from Meta Ads insights",
    )

    app.state.report_config = report_config or load_report_config()
    logger.info(
        "LIFT API configured: api_version=%s chunk_days=%s max_pages_per_chunk=%s",
        app.state.report_config.api_version,
        app.state.report_config.chunk_days,
        app.state.report_config.max_pages_per_chunk,
    )

    app.include_router(api_router)

    return app


app = create_app()
