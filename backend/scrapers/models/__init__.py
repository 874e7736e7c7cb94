"""Scraper/Ingestion SQLAlchemy Models."""

from .scraping_source import ScrapingSource
from .pending_show import PendingShow
from .admin_feedback import AdminFeedback
from .pipeline_run import PipelineRun, RUN_COUNTERS

__all__ = [
    "ScrapingSource",
    "PendingShow",
    "AdminFeedback",
    "PipelineRun",
    "RUN_COUNTERS",
]
