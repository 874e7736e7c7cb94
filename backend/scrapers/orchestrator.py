"""
Pipeline Orchestrator - Coordinates one batch invocation of the pipeline.

Responsibilities:
1. Manages pipeline runs (start, complete, fail)
2. Claims a batch of sources from the registry
3. Fetches and extracts sources in a bounded worker pool (network only)
4. Stages candidates and records source outcomes on the calling thread
5. Runs the normalize -> geocode -> dedup stages over the new rows

The stage processors are also usable on their own to work off a backlog
(CLI: normalize / geocode / dedup). Each one only picks rows whose stage
column is still empty and sets it with a compare-and-set UPDATE, so two
processors racing over the same rows do each row once.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from config import Config
from constants import REVIEWABLE_STATUSES, STATUS_PENDING

from .extraction_agent import ExtractionAgent, ExtractionOutcome, stage_candidates
from .llm_client import ModelNotConfiguredError
from .models import PendingShow, PipelineRun, RUN_COUNTERS
from .models.pending_show import payload_start_date
from .source_registry import SourceRegistry

logger = logging.getLogger(__name__)


# =============================================================================
# Stage processors
# =============================================================================

def _stage_query(db_session, pending_ids: Optional[Iterable[int]], limit: Optional[int], *filters):
    query = db_session.query(PendingShow).filter(*filters).order_by(PendingShow.id.asc())
    if pending_ids is not None:
        query = query.filter(PendingShow.id.in_(list(pending_ids)))
    if limit:
        query = query.limit(limit)
    return query


def normalize_pending(db_session, pending_ids: Optional[Iterable[int]] = None,
                      limit: Optional[int] = None, today: Optional[date] = None) -> Dict[str, int]:
    """Normalize PENDING rows that have not been normalized yet."""
    from services.normalization import normalize_show
    from services.quality import compute_quality_score

    if pending_ids is not None:
        pending_ids = list(pending_ids)
        if not pending_ids:
            return {"normalized": 0, "invalid": 0}

    rows = _stage_query(
        db_session, pending_ids, limit,
        PendingShow.status == STATUS_PENDING,
        PendingShow.normalized_at.is_(None),
    ).all()

    stats = {"normalized": 0, "invalid": 0}
    try:
        for pending in rows:
            result = normalize_show(pending.raw_payload, today=today)
            updated = (
                db_session.query(PendingShow)
                .filter(PendingShow.id == pending.id, PendingShow.normalized_at.is_(None))
                .update(
                    {
                        PendingShow.normalized_payload: result.payload,
                        PendingShow.start_date: payload_start_date(result.payload),
                        PendingShow.validation_warnings: result.warnings,
                        PendingShow.is_valid: result.is_valid,
                        PendingShow.quality_score: compute_quality_score(result.payload),
                        PendingShow.normalized_at: datetime.utcnow(),
                    },
                    synchronize_session=False,
                )
            )
            if not updated:
                continue
            stats["normalized"] += 1
            if not result.is_valid:
                stats["invalid"] += 1
                logger.warning(f"VALIDATION_FATAL pending {pending.id}: no name and no start date")
        db_session.commit()
    except SQLAlchemyError:
        db_session.rollback()
        raise
    db_session.expire_all()

    logger.info(f"Normalized {stats['normalized']} pending show(s), {stats['invalid']} invalid")
    return stats


def geocode_pending(db_session, geocoder=None, pending_ids: Optional[Iterable[int]] = None,
                    limit: Optional[int] = None) -> Dict[str, int]:
    """Geocode normalized, reviewable rows not yet attempted."""
    from services.geocoder import GoogleGeocoder, build_geocode_query

    geocoder = geocoder or GoogleGeocoder(db_session=db_session)
    stats = {"attempted": 0, "geocoded": 0, "skipped": 0}
    if not geocoder.enabled:
        logger.info("Geocoding skipped: GOOGLE_MAPS_API_KEY not configured")
        return stats

    if pending_ids is not None:
        pending_ids = list(pending_ids)
        if not pending_ids:
            return stats

    rows = _stage_query(
        db_session, pending_ids, limit,
        PendingShow.status.in_(REVIEWABLE_STATUSES),
        PendingShow.is_valid.is_(True),
        PendingShow.normalized_at.isnot(None),
        PendingShow.geocode_attempted_at.is_(None),
    ).all()

    for pending in rows:
        payload = pending.normalized_payload
        geocoded = None
        if build_geocode_query(payload):
            stats["attempted"] += 1
            result = geocoder.geocode_payload(payload)
            if result is not None:
                geocoded = result.to_payload(payload)
                stats["geocoded"] += 1
        else:
            stats["skipped"] += 1

        try:
            db_session.query(PendingShow).filter(
                PendingShow.id == pending.id,
                PendingShow.geocode_attempted_at.is_(None),
            ).update(
                {
                    PendingShow.geocoded_payload: geocoded,
                    PendingShow.geocode_attempted_at: datetime.utcnow(),
                },
                synchronize_session=False,
            )
            db_session.commit()
        except SQLAlchemyError:
            db_session.rollback()
            raise
    db_session.expire_all()

    logger.info(
        f"Geocoding: {stats['geocoded']}/{stats['attempted']} resolved, "
        f"{stats['skipped']} skipped (insufficient address)"
    )
    return stats


def dedup_pending(db_session, pending_ids: Optional[Iterable[int]] = None,
                  limit: Optional[int] = None) -> Dict[str, int]:
    """Flag duplicates among normalized PENDING rows not yet checked."""
    from services.dedup_service import DedupService

    return DedupService(db_session).run(pending_ids=pending_ids, limit=limit)


# =============================================================================
# Orchestrator
# =============================================================================

class PipelineOrchestrator:
    """
    Runs one batch: claim -> fetch/extract -> stage -> normalize -> geocode -> dedup.

    A failure on one source is recorded against that source and never
    aborts its siblings.
    """

    def __init__(self, db_session, agent: Optional[ExtractionAgent] = None,
                 registry: Optional[SourceRegistry] = None, geocoder=None,
                 today: Optional[date] = None):
        """
        Args:
            db_session: SQLAlchemy database session
            agent: ExtractionAgent (network only; shared by the worker threads)
            registry: SourceRegistry bound to db_session
            geocoder: GoogleGeocoder; built lazily when geocoding runs
            today: reference date for normalization (injectable for tests)
        """
        self.db_session = db_session
        self.agent = agent
        self.registry = registry or SourceRegistry(db_session)
        self.geocoder = geocoder
        self.today = today

    def run_batch(self, size: Optional[int] = None, workers: Optional[int] = None,
                  skip_geocode: bool = False, triggered_by: str = "manual") -> PipelineRun:
        """
        Execute one batch invocation.

        Args:
            size: sources to claim (default SCRAPE_BATCH_SIZE)
            workers: fetch/extract worker threads (default SCRAPE_WORKERS)
            skip_geocode: leave geocoding for a later run
            triggered_by: 'manual' or 'cron'

        Returns:
            Completed PipelineRun
        """
        size = size or Config.SCRAPE_BATCH_SIZE
        workers = workers or Config.SCRAPE_WORKERS
        agent = self.agent or ExtractionAgent()

        run = PipelineRun(
            triggered_by=triggered_by,
            config_snapshot={
                "batch_size": size,
                "workers": workers,
                "skip_geocode": skip_geocode,
                "extraction_model": agent.model.model,
                "chunk_size": agent.chunk_size,
            },
        )
        run.start()
        self.db_session.add(run)
        self.db_session.commit()
        logger.info(f"Pipeline run {run.run_id} started (batch {size}, {workers} workers)")

        stats = {counter: 0 for counter in RUN_COUNTERS}
        try:
            if not agent.model.configured:
                raise ModelNotConfiguredError("OPENAI_API_KEY is not set; no sources claimed")
            sources = self.registry.next_batch(size, claimed_by=run.run_id)
            stats["sources_claimed"] = len(sources)
            urls = [source.url for source in sources]

            new_ids: List[int] = []
            if urls:
                with ThreadPoolExecutor(max_workers=min(workers, len(urls))) as pool:
                    futures = {pool.submit(agent.extract, url): url for url in urls}
                    for future in as_completed(futures):
                        outcome = self._collect(future, futures[future])
                        new_ids.extend(self._record(run, outcome, stats))

            stats["normalized"] = normalize_pending(
                self.db_session, pending_ids=new_ids, today=self.today
            )["normalized"]
            if not skip_geocode:
                stats["geocoded"] = geocode_pending(
                    self.db_session, geocoder=self.geocoder, pending_ids=new_ids
                )["geocoded"]
            stats["duplicates_flagged"] = dedup_pending(
                self.db_session, pending_ids=new_ids
            )["duplicates_flagged"]

            run.complete(stats)
            self.db_session.commit()
        except Exception as e:
            self.db_session.rollback()
            run.fail(e)
            self.db_session.commit()
            logger.error(f"Pipeline run {run.run_id} failed: {e}")
            raise

        logger.info(
            f"Pipeline run {run.run_id} completed in {run.duration_seconds:.1f}s: "
            + ", ".join(f"{k}={stats[k]}" for k in RUN_COUNTERS)
        )
        return run

    def _collect(self, future, url: str) -> ExtractionOutcome:
        """Outcome of a worker; an unexpected worker error becomes a source failure."""
        try:
            return future.result()
        except Exception as e:
            logger.exception(f"Unexpected error extracting {url}")
            return ExtractionOutcome(source_url=url, fetch_error=f"{type(e).__name__}: {e}")

    def _record(self, run: PipelineRun, outcome: ExtractionOutcome, stats: Dict[str, int]) -> List[int]:
        """
        Stage one source's candidates and record its outcome. Returns new pending ids.

        A database error here fails only this source: its claim is released
        and the remaining sources are still recorded.
        """
        pending_ids: List[int] = []
        try:
            staged = stage_candidates(self.db_session, outcome, run_id=run.run_id)
            pending_ids = staged["pending_ids"]
            stats["candidates_staged"] += staged["staged"]
            stats["extract_errors"] += staged["extract_errors"] + len(outcome.chunk_errors)

            if outcome.model_error:
                # Model outage: the source is not at fault, release it for the next run
                self.registry.release_claim(outcome.source_url)
                stats["sources_failed"] += 1
            else:
                self.registry.record_outcome(
                    outcome.source_url,
                    success=outcome.succeeded,
                    error_message=outcome.error_summary,
                )
                if not outcome.succeeded:
                    stats["sources_failed"] += 1
                    logger.warning(f"Source {outcome.source_url} failed: {outcome.error_summary}")
        except SQLAlchemyError as e:
            self.db_session.rollback()
            stats["sources_failed"] += 1
            logger.error(f"Could not record results for {outcome.source_url}: {e}")
            self._release_after_error(outcome.source_url)
        return pending_ids

    def _release_after_error(self, url: str):
        try:
            self.registry.release_claim(url)
        except SQLAlchemyError as e:
            logger.error(f"Could not release claim on {url}, it expires with the claim TTL: {e}")
