"""
Show extraction model - OpenAI chat completion wrapper.

The model receives one chunk of cleaned page text and must answer with a
JSON array of show objects using a fixed key set. Parsing and validation of
the answer live in scrapers.extraction_agent.
"""
import logging
from typing import Optional

from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI

from config import Config

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You extract trading card and sports collectible show listings from web page text.

Return ONLY a JSON array. Each element is one show occurrence with exactly these keys:
  name          - show name
  startDate     - first day, as written on the page (keep the year if shown)
  endDate       - last day for multi-day shows, else null
  venueName     - venue or building name only
  address       - street address only
  city          - city only
  state         - 2-letter US state code
  zipCode       - 5-digit zip code
  entryFee      - admission as written ("$5", "Free")
  description   - short description
  url           - link to the show's own page if present
  contactName   - promoter or contact person
  contactPhone  - phone number
  contactEmail  - email address
  showHours     - hours as written ("9am-3pm")

Rules:
- Every key must be present; use null when the page does not say.
- Do not put the state into the date, or the city into the venue.
- One element per show date; do not merge different shows.
- If there are no shows, return [].
- No markdown, no commentary."""


class ModelCallError(RuntimeError):
    """The model API could not be reached or refused the request."""


class ModelNotConfiguredError(ModelCallError):
    """No API key is configured for the extraction model."""


def get_openai_client(api_key: Optional[str] = None, timeout: Optional[float] = None) -> OpenAI:
    """Build an OpenAI client from explicit settings or Config."""
    api_key = api_key or Config.OPENAI_API_KEY
    if not api_key:
        raise ModelNotConfiguredError("OPENAI_API_KEY is not set")
    return OpenAI(
        api_key=api_key,
        timeout=timeout if timeout is not None else Config.LLM_TIMEOUT_SECONDS,
        max_retries=0,
    )


class ShowExtractionModel:
    """Sends page chunks to the extraction model and returns its raw text answer."""

    def __init__(self, client: Optional[OpenAI] = None, model: Optional[str] = None):
        self._client = client
        self.model = model or Config.EXTRACTION_MODEL

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(Config.OPENAI_API_KEY)

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = get_openai_client()
        return self._client

    def complete(self, chunk_text: str, source_url: str) -> str:
        """
        Ask the model for the shows in one chunk.

        Returns:
            The model's raw text (expected to be a JSON array)

        Raises:
            ModelCallError: API unreachable, timed out, or returned an error status
        """
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                temperature=0,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": f"Source page: {source_url}\n\nPAGE TEXT:\n{chunk_text}"},
                ],
            )
        except APIStatusError as exc:
            if exc.status_code == 429:
                raise ModelCallError("OpenAI API returned status 429: rate limited or out of credits") from exc
            raise ModelCallError(f"OpenAI API returned status {exc.status_code}") from exc
        except (APIConnectionError, APITimeoutError) as exc:
            raise ModelCallError(f"OpenAI API unreachable: {exc}") from exc

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
