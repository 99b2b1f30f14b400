"""Google Gemini client: grounded market quotes and structured analysis."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import re
from collections.abc import Sequence
from typing import Any

from .analysis import classify_position_flow, step_changes
from .errors import AnalysisError, FetchError
from .interface import MarketDataClient
from .models import (
    AnalysisResult,
    Citation,
    DataPoint,
    DataSourceMode,
    FetchResult,
    OptionSeriesEntry,
    SeriesKind,
    format_label,
    now_ms,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_VOLUME = 1000

_JSON_BLOCK = re.compile(r"```json\s*\n(.*?)\n\s*```", re.DOTALL)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_NUMBER = re.compile(r"\d[\d,]*(?:\.\d+)?")

SNAPSHOT_PROMPT = """\
You are a market data retrieval agent. Find the latest real-time gold data:
1. XAU/USD spot price (live bid/ask, not a settlement or previous close).
2. The live price of the active COMEX gold futures contract (GC).
3. Total open interest of gold futures from CME Group.
4. CME gold options open interest: the 3 most active monthly series and the
   2-3 most active weekly or daily series, with their Globex codes.

Return only a JSON block:
```json
{
  "spotPrice": 2350.10,
  "futurePrice": 2365.20,
  "openInterest": 450000,
  "volume": 120000,
  "optionSeries": [
    {"expiry": "Dec 24", "code": "OGZ24", "type": "MONTHLY", "callOI": 15000, "putOI": 12000}
  ]
}
```
"""

ANALYSIS_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "sentiment": {"type": "STRING", "enum": ["BULLISH", "BEARISH", "NEUTRAL"]},
        "confidence": {"type": "NUMBER", "description": "Confidence score 0-100"},
        "summary": {"type": "STRING"},
        "recommendation": {"type": "STRING"},
        "basis": {"type": "NUMBER"},
        "oiTrend": {"type": "STRING", "enum": ["RISING", "FALLING", "STABLE"]},
        "priceTrend": {"type": "STRING", "enum": ["RISING", "FALLING", "STABLE"]},
        "support": {"type": "STRING"},
        "resistance": {"type": "STRING"},
    },
    "required": [
        "sentiment",
        "confidence",
        "summary",
        "recommendation",
        "basis",
        "oiTrend",
        "priceTrend",
        "support",
        "resistance",
    ],
}

LANGUAGE_NAMES = {"en": "English", "th": "Thai"}


def parse_snapshot_text(text: str) -> dict[str, Any]:
    """Extract quote fields from a grounded model response.

    Tries a fenced ```json block, then any {...} object. If no spot price
    comes out of that, the first three numbers in the text are taken as spot,
    futures and open interest. Fewer than three numbers is a FetchError.
    """
    parsed: dict[str, Any] = {}
    match = _JSON_BLOCK.search(text) or _JSON_OBJECT.search(text)
    if match:
        raw = match.group(1) if match.re is _JSON_BLOCK else match.group(0)
        try:
            loaded = json.loads(raw)
            if isinstance(loaded, dict):
                parsed = loaded
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse JSON from model response: %s", e)

    if not _as_float(parsed.get("spotPrice")):
        numbers = [float(n.replace(",", "")) for n in _NUMBER.findall(text)]
        if len(numbers) < 3:
            raise FetchError("Model could not retrieve valid price data", context={"text": text})
        parsed["spotPrice"], parsed["futurePrice"], parsed["openInterest"] = numbers[:3]

    if not isinstance(parsed.get("optionSeries"), list):
        parsed["optionSeries"] = []
    return parsed


def parse_option_series(raw: list[Any]) -> list[OptionSeriesEntry]:
    """Convert option series dicts, skipping malformed entries."""
    entries: list[OptionSeriesEntry] = []
    for item in raw:
        try:
            kind = str(item.get("type") or SeriesKind.MONTHLY.value).upper()
            entries.append(
                OptionSeriesEntry(
                    expiry=str(item["expiry"]),
                    code=item.get("code") or None,
                    call_oi=int(item.get("callOI") or 0),
                    put_oi=int(item.get("putOI") or 0),
                    kind=SeriesKind(kind),
                    max_pain=_as_float(item.get("maxPain")),
                )
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping option series %r: %s", item, e)
    return entries


def extract_citations(response: Any) -> list[Citation]:
    """Web sources from the grounding metadata of a response, in order."""
    try:
        chunks = response.candidates[0].grounding_metadata.grounding_chunks or []
    except (AttributeError, IndexError, TypeError):
        return []
    citations = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        if web is None:
            continue
        citations.append(Citation(title=web.title or "Source", uri=web.uri or ""))
    return citations


def build_analysis_prompt(
    series: Sequence[DataPoint],
    previous: DataPoint | None,
    language: str,
    user_prompt: str | None = None,
) -> str:
    latest = series[-1]
    price_change, oi_change = step_changes(latest, previous)
    flow = classify_position_flow(price_change, oi_change)
    lines = [
        "You are an intraday quantitative analyst for gold (XAU/USD).",
        f"Spot price: {latest.spot_price}",
        f"Futures price: {latest.future_price}",
        f"Basis (futures - spot): {latest.basis:.2f}",
        f"Open interest (CME): {latest.open_interest}",
        f"Price change: {price_change:.2f}",
        f"OI change: {oi_change}",
        f"Position flow: {flow.value}",
        "Price up + OI up: new longs (bullish). Price up + OI down: short covering.",
        "Price down + OI up: new shorts (bearish). Price down + OI down: long liquidation.",
        "Estimate intraday support and resistance and suggest an entry/exit plan.",
        f"Write all text in {LANGUAGE_NAMES.get(language, 'English')}.",
    ]
    if user_prompt:
        lines.append(f'Also address this question from the user: "{user_prompt}"')
    return "\n".join(lines)


def _as_float(value: Any) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class GeminiMarketClient(MarketDataClient):
    """MarketDataClient backed by the Gemini API.

    fetch_snapshot() asks a model with Google Search grounding for the live
    quote and parses the JSON it returns; analyze() asks for a structured
    response matching ANALYSIS_SCHEMA.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        language: str = "en",
    ) -> None:
        self._api_key = (api_key or "").strip()
        self._model = model
        self._language = language
        self._client: Any = None  # Lazy import to avoid hard dependency at import time

    def set_api_key(self, api_key: str | None) -> None:
        self._api_key = (api_key or "").strip()
        self._client = None

    @property
    def has_credential(self) -> bool:
        return bool(self._api_key)

    async def fetch_snapshot(self) -> FetchResult:
        if not self._api_key:
            raise FetchError("API key is missing. Provide a Google Gemini API key.")

        try:
            # The Gemini SDK is synchronous; run it in a thread to avoid
            # blocking the event loop.
            response = await asyncio.to_thread(self._generate, SNAPSHOT_PROMPT, True, None)
        except Exception as e:
            raise FetchError(f"Gemini fetch failed: {e}") from e

        text = getattr(response, "text", None) or ""
        parsed = parse_snapshot_text(text)
        citations = extract_citations(response)

        try:
            ts = now_ms()
            point = DataPoint(
                timestamp=ts,
                label=format_label(ts),
                spot_price=round(float(parsed["spotPrice"]), 2),
                future_price=round(float(parsed["futurePrice"]), 2),
                open_interest=int(float(parsed["openInterest"])),
                volume=int(float(parsed.get("volume") or DEFAULT_VOLUME)),
                source=DataSourceMode.EXTERNAL,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise FetchError(f"Insufficient numeric fields in response: {e}", context=parsed) from e

        logger.info(
            "Gemini snapshot: spot %.2f, future %.2f, OI %d (%d sources)",
            point.spot_price,
            point.future_price,
            point.open_interest,
            len(citations),
        )
        return FetchResult(
            data_point=point,
            option_series=parse_option_series(parsed["optionSeries"]),
            citations=citations,
        )

    async def analyze(
        self,
        series: Sequence[DataPoint],
        previous: DataPoint | None = None,
        citations: Sequence[Citation] = (),
        user_prompt: str | None = None,
    ) -> AnalysisResult:
        if not self._api_key:
            raise AnalysisError("API key is missing. Provide a Google Gemini API key.")
        if not series:
            raise AnalysisError("Cannot analyze an empty series")

        if previous is None and len(series) > 1:
            previous = series[-2]
        prompt = build_analysis_prompt(series, previous, self._language, user_prompt)

        try:
            response = await asyncio.to_thread(self._generate, prompt, False, ANALYSIS_SCHEMA)
        except Exception as e:
            raise AnalysisError(f"Gemini analysis failed: {e}") from e

        text = getattr(response, "text", None)
        if not text:
            raise AnalysisError("Empty response from analysis model")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise AnalysisError(f"Analysis response is not JSON: {e}") from e
        if not isinstance(payload, dict):
            raise AnalysisError("Analysis response is not a JSON object")

        result = AnalysisResult.from_dict(payload)
        return result if not citations else dataclasses.replace(result, citations=tuple(citations))

    def _generate(self, prompt: str, grounded: bool, schema: dict[str, Any] | None) -> Any:
        """Synchronous call to the Gemini API. Runs in a thread."""
        # Lazy import: only import google-genai when actually calling the API.
        from google import genai
        from google.genai import types

        if self._client is None:
            self._client = genai.Client(api_key=self._api_key)

        if grounded:
            # response_mime_type is not allowed together with the search tool
            config = types.GenerateContentConfig(
                tools=[types.Tool(google_search=types.GoogleSearch())],
            )
        else:
            config = types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=schema,
            )
        return self._client.models.generate_content(
            model=self._model,
            contents=prompt,
            config=config,
        )
