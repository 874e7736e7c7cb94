"""
Extraction Agent - fetch a source page and extract show candidates.

Flow per source:
1. fetch_html(): GET with timeout, bounded retry with exponential backoff
2. clean_html(): drop script/style/etc, keep text and link targets
3. split_chunks(): sequential ~50KB chunks for the model context window
4. each chunk -> extraction model -> strict JSON array
5. stage_candidates(): one PendingShow per candidate, raw payload verbatim

Steps 1-4 are network-only and safe to run in a worker pool. Staging runs
on the caller's thread with the caller's session.

Failure handling:
- FETCH_ERROR: retried up to MAX_FETCH_ATTEMPTS, then reported on the outcome
- EXTRACT_ERROR: the chunk contributes zero candidates, other chunks continue
- model API unavailable: remaining chunks skipped, not counted against the source
"""
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
from bs4 import BeautifulSoup, Comment
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from constants import (
    EXTRACT_ERROR,
    FETCH_ERROR,
    STATUS_DUPLICATE,
    STATUS_EXTRACT_ERROR,
    STATUS_PENDING,
)
from scrapers.candidate_schema import validate_candidate
from scrapers.llm_client import ModelCallError, ShowExtractionModel
from scrapers.models import PendingShow
from scrapers.rate_limiter import RateLimitTimeout, domain_of, get_scraper_rate_limiter
from scrapers.utils.hashing import compute_json_hash

logger = logging.getLogger(__name__)

# Retry configuration
MAX_FETCH_ATTEMPTS = 3
INITIAL_BACKOFF_SECONDS = 1.0
BACKOFF_MULTIPLIER = 2.0
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
STRIP_TAGS = ("script", "style", "noscript", "svg", "iframe", "template", "head")
LLM_RATE_DOMAIN = "api.openai.com"

FENCE_RE = re.compile(r"^\s*```[a-zA-Z]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


class PipelineError(Exception):
    """Base class for per-source pipeline failures."""
    error_type = "PIPELINE_ERROR"


class FetchError(PipelineError):
    """Network error, timeout or error status fetching a source page."""
    error_type = FETCH_ERROR


class ExtractionError(PipelineError):
    """Model output was empty, not JSON, or not a JSON array."""
    error_type = EXTRACT_ERROR


@dataclass
class ExtractionOutcome:
    """Result of fetching and extracting one source."""
    source_url: str
    candidates: List[Any] = field(default_factory=list)
    chunk_count: int = 0
    chunk_errors: List[str] = field(default_factory=list)
    fetch_error: Optional[str] = None
    model_error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.fetch_error is None and self.model_error is None and not self.chunk_errors

    @property
    def counts_against_source(self) -> bool:
        """Model API outages are not the source's fault."""
        return self.model_error is None and not self.succeeded

    @property
    def error_summary(self) -> Optional[str]:
        if self.fetch_error:
            return f"{FETCH_ERROR}: {self.fetch_error}"
        if self.model_error:
            return f"MODEL_UNAVAILABLE: {self.model_error}"
        if self.chunk_errors:
            return f"{EXTRACT_ERROR}: " + "; ".join(self.chunk_errors)
        return None


# =============================================================================
# Pure helpers
# =============================================================================

def strip_code_fences(text: str) -> str:
    """Remove a ```json ... ``` wrapper if the model added one."""
    match = FENCE_RE.match(text or "")
    return match.group(1) if match else (text or "")


def parse_model_output(text: str) -> List[Any]:
    """
    Parse the model's answer into a list of candidates.

    Raises:
        ExtractionError: empty output, invalid JSON, or not a JSON array
    """
    body = strip_code_fences(text).strip()
    if not body:
        raise ExtractionError("model returned empty output")
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"model returned non-JSON output: {e}") from e
    if not isinstance(data, list):
        raise ExtractionError(f"model returned {type(data).__name__}, expected a JSON array")
    return data


def clean_html(html: str) -> str:
    """
    Reduce a page to readable text for the model.

    Link targets are kept inline ("Show page (https://...)") so the model
    can fill the url field.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    for tag in soup(STRIP_TAGS):
        tag.decompose()
    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()
    for link in soup.find_all("a", href=True):
        href = link["href"]
        if href.startswith(("http://", "https://")):
            link.append(f" ({href})")

    lines = (line.strip() for line in soup.get_text("\n").splitlines())
    return "\n".join(line for line in lines if line)


def split_chunks(text: str, chunk_size: int) -> List[str]:
    """
    Split text into sequential chunks of at most chunk_size characters,
    breaking on line boundaries where possible.
    """
    if not text:
        return []
    if len(text) <= chunk_size:
        return [text]

    chunks = []
    current: List[str] = []
    current_len = 0
    for line in text.split("\n"):
        while len(line) > chunk_size:
            if current:
                chunks.append("\n".join(current))
                current, current_len = [], 0
            chunks.append(line[:chunk_size])
            line = line[chunk_size:]
        added = len(line) + (1 if current else 0)
        if current and current_len + added > chunk_size:
            chunks.append("\n".join(current))
            current, current_len = [], 0
            added = len(line)
        current.append(line)
        current_len += added
    if current:
        chunks.append("\n".join(current))
    return chunks


# =============================================================================
# Agent
# =============================================================================

class ExtractionAgent:
    """Fetches a source and extracts show candidates. Holds no DB state."""

    def __init__(self, model: Optional[ShowExtractionModel] = None, session: Optional[requests.Session] = None,
                 rate_limiter=None, fetch_timeout: Optional[float] = None,
                 chunk_size: Optional[int] = None, sleep=time.sleep):
        self.model = model or ShowExtractionModel()
        self.session = session or requests.Session()
        self.rate_limiter = rate_limiter or get_scraper_rate_limiter()
        self.fetch_timeout = fetch_timeout if fetch_timeout is not None else Config.FETCH_TIMEOUT_SECONDS
        self.chunk_size = chunk_size or Config.CHUNK_SIZE_CHARS
        self._sleep = sleep

    def fetch_html(self, url: str) -> str:
        """
        GET a page with bounded retry.

        Retries timeouts, connection errors and 429/5xx responses with
        exponential backoff; other 4xx responses fail immediately.

        Raises:
            FetchError: after MAX_FETCH_ATTEMPTS failures or on a non-retryable status
        """
        backoff = INITIAL_BACKOFF_SECONDS
        last_error = None

        for attempt in range(1, MAX_FETCH_ATTEMPTS + 1):
            try:
                self.rate_limiter.wait(domain_of(url))
                response = self.session.get(
                    url,
                    timeout=self.fetch_timeout,
                    headers={"User-Agent": USER_AGENT, "Accept": "text/html,*/*"},
                )
                if response.status_code in RETRYABLE_STATUS_CODES:
                    last_error = f"HTTP {response.status_code}"
                else:
                    response.raise_for_status()
                    return response.text
            except requests.exceptions.HTTPError as e:
                raise FetchError(f"HTTP {e.response.status_code if e.response is not None else '?'} for {url}") from e
            except RateLimitTimeout as e:
                raise FetchError(str(e)) from e
            except requests.exceptions.RequestException as e:
                last_error = f"{type(e).__name__}: {e}"

            if attempt < MAX_FETCH_ATTEMPTS:
                logger.warning(
                    f"Fetch attempt {attempt}/{MAX_FETCH_ATTEMPTS} failed for {url} ({last_error}), "
                    f"retrying in {backoff:.1f}s"
                )
                self._sleep(backoff)
                backoff *= BACKOFF_MULTIPLIER

        raise FetchError(f"{url} failed after {MAX_FETCH_ATTEMPTS} attempts: {last_error}")

    def extract(self, url: str) -> ExtractionOutcome:
        """Fetch a source and extract candidates from every chunk."""
        outcome = ExtractionOutcome(source_url=url)

        try:
            html = self.fetch_html(url)
        except FetchError as e:
            outcome.fetch_error = str(e)
            logger.warning(f"{FETCH_ERROR} {url}: {e}")
            return outcome

        chunks = split_chunks(clean_html(html), self.chunk_size)
        outcome.chunk_count = len(chunks)
        if not chunks:
            outcome.chunk_errors.append("page has no text content")
            logger.warning(f"{EXTRACT_ERROR} {url}: page has no text content")
            return outcome

        for index, chunk in enumerate(chunks, start=1):
            try:
                self.rate_limiter.wait(LLM_RATE_DOMAIN)
                answer = self.model.complete(chunk, url)
                items = parse_model_output(answer)
            except ExtractionError as e:
                outcome.chunk_errors.append(f"chunk {index}/{len(chunks)}: {e}")
                logger.warning(f"{EXTRACT_ERROR} {url} chunk {index}/{len(chunks)}: {e}")
                continue
            except (ModelCallError, RateLimitTimeout) as e:
                outcome.model_error = str(e)
                logger.error(f"Extraction model unavailable while processing {url}: {e}")
                break
            outcome.candidates.extend(items)

        logger.info(
            f"Extracted {len(outcome.candidates)} candidate(s) from {url} "
            f"({outcome.chunk_count} chunk(s), {len(outcome.chunk_errors)} failed)"
        )
        return outcome


# =============================================================================
# Staging
# =============================================================================

def stage_candidates(db_session, outcome: ExtractionOutcome, run_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Insert one PendingShow per extracted candidate.

    - dict candidates -> status PENDING, raw payload verbatim, schema warnings kept
    - non-object candidates -> status EXTRACT_ERROR (audit only)
    - a candidate identical to one already PENDING/DUPLICATE for the same
      source is skipped

    Returns:
        {"staged": int, "extract_errors": int, "skipped": int, "pending_ids": [...]}
    """
    stats = {"staged": 0, "extract_errors": 0, "skipped": 0, "pending_ids": []}
    if not outcome.candidates:
        return stats

    seen_hashes = set()
    rows = []
    for item in outcome.candidates:
        raw_hash = compute_json_hash(item)
        if raw_hash in seen_hashes:
            stats["skipped"] += 1
            continue
        seen_hashes.add(raw_hash)

        if not isinstance(item, dict):
            rows.append(PendingShow(
                source_url=outcome.source_url,
                run_id=run_id,
                raw_payload=item,
                raw_hash=raw_hash,
                status=STATUS_EXTRACT_ERROR,
                is_valid=False,
                validation_warnings=[f"candidate is a {type(item).__name__}, not an object"],
            ))
            stats["extract_errors"] += 1
            continue

        try:
            _, warnings = validate_candidate(item)
        except PydanticValidationError as e:
            rows.append(PendingShow(
                source_url=outcome.source_url,
                run_id=run_id,
                raw_payload=item,
                raw_hash=raw_hash,
                status=STATUS_EXTRACT_ERROR,
                is_valid=False,
                validation_warnings=[f"candidate failed schema validation: {e.error_count()} error(s)"],
            ))
            stats["extract_errors"] += 1
            continue

        existing = (
            db_session.query(PendingShow.id)
            .filter(
                PendingShow.source_url == outcome.source_url,
                PendingShow.raw_hash == raw_hash,
                PendingShow.status.in_([STATUS_PENDING, STATUS_DUPLICATE]),
            )
            .first()
        )
        if existing:
            stats["skipped"] += 1
            continue

        rows.append(PendingShow(
            source_url=outcome.source_url,
            run_id=run_id,
            raw_payload=item,
            raw_hash=raw_hash,
            status=STATUS_PENDING,
            validation_warnings=warnings,
        ))
        stats["staged"] += 1

    try:
        db_session.add_all(rows)
        db_session.commit()
    except SQLAlchemyError:
        db_session.rollback()
        raise

    stats["pending_ids"] = [row.id for row in rows if row.status == STATUS_PENDING]
    return stats
