"""
Show Ingestion Package

Batch pipeline that turns show listings on source web pages into
reviewable pending shows:
- Source registry with adaptive priority and leased scheduling
- LLM extraction agent with a fixed candidate schema
- Config-driven rate limiting for fetches and metered APIs
- Staging-to-publication data model
"""

from .extraction_agent import ExtractionAgent, ExtractionOutcome
from .orchestrator import PipelineOrchestrator
from .source_registry import SourceRegistry

__all__ = [
    "ExtractionAgent",
    "ExtractionOutcome",
    "PipelineOrchestrator",
    "SourceRegistry",
]
