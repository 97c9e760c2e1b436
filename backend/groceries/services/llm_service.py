"""
LLM Service for grocery list parsing using Ollama.

Sends the lines the catalog could not resolve to the model and turns its
answer into one validated {article, quantity, category} item per line.
Any problem with the answer fails the whole call; nothing is partially
accepted.
"""

import json
import re
import time
import logging
from typing import Any, List, Optional

import ollama
import httpx
from pydantic import ValidationError
from sqlalchemy.orm import Session

from groceries.config import settings
from groceries.models.category import FALLBACK_CATEGORY
from groceries.schemas import ParsedGroceryItem
from groceries.services.category_cache import CategoryCache
from groceries.services.line_parser import split_lines
from groceries.services.parser_log_service import (
    ParserCallRecorder,
    ParserStats,
    estimate_tokens,
)

logger = logging.getLogger(__name__)

REQUEST_TYPE = "grocery_parse"
UNKNOWN_CATEGORY = "Unknown"

# Error kinds reported to callers and written to the parser log
NOT_INITIALIZED = "not_initialized"
AUTH = "auth"
RATE_LIMIT = "rate_limit"
NETWORK = "network"
TIMEOUT = "timeout"
MALFORMED_RESPONSE = "malformed_response"
UNKNOWN = "unknown"

_CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


class ParserError(Exception):
    """The grocery parser could not turn the text into items."""

    def __init__(self, message: str, kind: str = UNKNOWN):
        super().__init__(message)
        self.kind = kind


class ParserNotInitializedError(ParserError):
    def __init__(self, message: str = "Grocery parser not initialized. Check OLLAMA_HOST."):
        super().__init__(message, NOT_INITIALIZED)


class ParserResponseError(ParserError):
    def __init__(self, message: str):
        super().__init__(message, MALFORMED_RESPONSE)


def create_ollama_client() -> Optional[ollama.Client]:
    """Build the Ollama client, or None when parsing is not configured."""
    if not settings.OLLAMA_HOST:
        logger.warning("OLLAMA_HOST not set - AI parsing will not work")
        return None
    try:
        timeout = httpx.Timeout(settings.OLLAMA_TIMEOUT, connect=settings.OLLAMA_CONNECT_TIMEOUT)
        client = ollama.Client(host=settings.OLLAMA_HOST, timeout=timeout)
        logger.info(f"Grocery parser using {settings.TEXT_MODEL} at {settings.OLLAMA_HOST}")
        return client
    except Exception as e:
        logger.error(f"Failed to create Ollama client for {settings.OLLAMA_HOST}: {e}")
        return None


def classify_error(error: Exception) -> str:
    """Map a failure to a coarse error kind."""
    if isinstance(error, ParserError):
        return error.kind
    if isinstance(error, ollama.ResponseError):
        status = getattr(error, "status_code", None)
        if status in (401, 403):
            return AUTH
        if status == 429:
            return RATE_LIMIT
        if status in (408, 504):
            return TIMEOUT
        return UNKNOWN
    if isinstance(error, (httpx.TimeoutException, TimeoutError)):
        return TIMEOUT
    if isinstance(error, (httpx.NetworkError, ConnectionError)):
        return NETWORK
    return UNKNOWN


def strip_code_fences(response_text: str) -> str:
    """Remove markdown code fences around a JSON answer."""
    match = _CODE_FENCE.search(response_text)
    if match:
        return match.group(1).strip()
    return response_text.strip()


def parse_items_response(response_text: str, expected_count: int) -> List[ParsedGroceryItem]:
    """
    Validate the model answer.

    Args:
        response_text: Raw model output
        expected_count: Number of input lines; one item is required per line

    Returns:
        Validated items, positionally aligned with the input lines

    Raises:
        ParserResponseError: on any deviation from the contract
    """
    cleaned = strip_code_fences(response_text or "")
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error: {e}, text: {response_text[:200]!r}")
        raise ParserResponseError("AI response was not valid JSON") from e

    if not isinstance(data, list):
        raise ParserResponseError("AI response was not an array")

    if len(data) != expected_count:
        raise ParserResponseError(
            f"AI returned {len(data)} items for {expected_count} lines"
        )

    items = []
    for raw in data:
        if not isinstance(raw, dict) or not raw.get("article") or not raw.get("category"):
            raise ParserResponseError("AI response missing required fields")
        try:
            items.append(ParsedGroceryItem.model_validate(raw))
        except ValidationError as e:
            raise ParserResponseError(f"AI response failed validation: {e.errors()[0]['msg']}") from e

    return items


def create_grocery_parsing_prompt(grocery_text: str, categories: List[str], language: str) -> str:
    """
    Create prompt for grocery list parsing.

    Args:
        grocery_text: Newline separated lines, one item per line
        categories: Category names the model may choose from
        language: Language the list is written in

    Returns:
        Formatted prompt string
    """
    categories_list = ", ".join(categories or [FALLBACK_CATEGORY])
    return f"""You are a grocery list parser. You fix spelling and grammar mistakes in {language} grocery lists.
Each LINE of the input is ONE complete item name. Never split a line into several items and never merge lines.

Examples:
"Oeuf Dan" -> {{"article": "Oeuf Dan", "quantity": 1, "category": "Produits laitiers"}}
"Pain complet" -> {{"article": "Pain complet", "quantity": 1, "category": "Boulangerie"}}
"2 pommes" -> {{"article": "pommes", "quantity": 2, "category": "Fruits et légumes"}}
Wrong: turning "Pain complet" into two items "Pain" and "complet".

Available categories: {categories_list}

Rules:
1. Correct spelling mistakes first.
2. Return exactly one JSON object per input line, in the same order as the lines.
3. Keep every word of a line in the same item name.
4. Extract the quantity if the line has one, otherwise use 1.
5. Words in another language keep their language and are categorised by meaning.
6. If you do not understand a line or are unsure of its category, use the category "{UNKNOWN_CATEGORY}".
7. Never add items that are not in the input.
8. Return ONLY a JSON array, no other text.

Lines ({language}, one item per line):
{grocery_text}"""


class GroceryParser:
    """
    Adapter between the grocery pipeline and the language model.

    Args:
        client: Ollama client, None when AI parsing is not configured
        category_cache: Source of the allowed category vocabulary
        recorder: Call log writer
        model: Ollama model name
    """

    def __init__(
        self,
        client: Optional[Any],
        category_cache: CategoryCache,
        recorder: Optional[ParserCallRecorder] = None,
        model: str = settings.TEXT_MODEL,
        temperature: float = settings.PARSER_TEMPERATURE,
        language: str = settings.PARSER_LANGUAGE,
    ):
        self.client = client
        self.category_cache = category_cache
        self.recorder = recorder or ParserCallRecorder()
        self.model = model
        self.temperature = temperature
        self.language = language

    @property
    def is_initialized(self) -> bool:
        return self.client is not None

    def get_stats(self):
        return self.recorder.stats.snapshot(self.is_initialized, self.model)

    def parse_grocery_items(self, db: Session, grocery_text: str) -> List[ParsedGroceryItem]:
        """
        Parse unresolved grocery lines.

        Args:
            db: Database session (category vocabulary)
            grocery_text: Newline separated lines the catalog did not know

        Returns:
            One ParsedGroceryItem per non-empty input line, in order

        Raises:
            ParserError: the whole call failed; kind tells why
        """
        lines = split_lines(grocery_text or "")
        started = time.monotonic()
        input_tokens = 0
        output_tokens = 0

        try:
            if not self.is_initialized:
                raise ParserNotInitializedError()
            if not lines:
                raise ValueError("Empty grocery text provided")

            joined = "\n".join(lines)
            logger.info(f"Sending {len(lines)} lines to the grocery parser")
            prompt = create_grocery_parsing_prompt(
                joined, self.category_cache.get(db), self.language
            )
            input_tokens = estimate_tokens(prompt)

            response = self.client.generate(
                model=self.model,
                prompt=prompt,
                options={"temperature": self.temperature},
            )
            response_text = response["response"] or ""
            output_tokens = estimate_tokens(response_text)
            logger.debug(f"Grocery parser raw response: {response_text!r}")

            items = parse_items_response(response_text, expected_count=len(lines))

        except ParserError as e:
            self._record(grocery_text, False, input_tokens, output_tokens, started, e.kind, str(e))
            raise
        except ValueError:
            raise
        except Exception as e:
            kind = classify_error(e)
            self._record(grocery_text, False, input_tokens, output_tokens, started, kind, str(e))
            raise ParserError(f"Failed to parse grocery items: {e}", kind) from e

        self._record(grocery_text, True, input_tokens, output_tokens, started)
        logger.info(f"AI parsed {len(items)} items from grocery list")
        return items

    def _record(self, text, success, input_tokens, output_tokens, started, error_type=None, error_message=None):
        self.recorder.record(
            REQUEST_TYPE,
            text,
            success,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            response_time_ms=int((time.monotonic() - started) * 1000),
            error_type=error_type,
            error_message=error_message,
        )


def create_grocery_parser(session_factory=None) -> GroceryParser:
    """Wire a parser with the configured client, cache and call log."""
    return GroceryParser(
        client=create_ollama_client(),
        category_cache=CategoryCache(ttl=settings.CATEGORY_CACHE_TTL),
        recorder=ParserCallRecorder(session_factory=session_factory, stats=ParserStats()),
    )
