"""
Entity classification
=====================

Maps article text to the publicly traded companies it affects using Gemini.
The model is asked for a bare JSON array; code fences and any chatter
around the array are stripped before validation.  When nothing applies the
model answers with a single ``UNKNOWN`` entry, which the compositor treats
as "nothing to post".

Rate-limit (429) and unavailable (503) responses are retried with delays of
2s, 4s, ...; every other failure is raised as :class:`ClassificationError`.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, List

from google.api_core import exceptions as google_exceptions
from pydantic import BaseModel, Field, ValidationError, field_validator

from .config import Settings
from .errors import ClassificationError, ClassificationUnavailableError
from .logging_utils import get_logger
from .models import EntityLabel

log = get_logger("entities")

_RETRYABLE = (
    google_exceptions.ResourceExhausted,  # 429
    google_exceptions.ServiceUnavailable,  # 503
)

_PROMPT_HEAD = """You must respond with ONLY a valid JSON array. Do not include any explanatory text, preamble, markdown formatting, or commentary before or after the JSON. Your entire response must be parseable JSON.

ROLE: You are an expert financial-news-to-ticker mapper extracting US stock tickers affected by financial news.

OUTPUT FORMAT - Return a JSON array of objects with this exact structure:
[
 {
  "label": "<TICKER or UNKNOWN>",
  "name": "<Company Name>",
  "confidence": <0.00-1.00>,
  "explanation": "<max 20 words>"
 }
]

EXAMPLES:

Input: "Amazon to cut around 14k corporate jobs: Amazon will eliminate 14,000 corporate positions through internal restructuring, joining over 200 tech companies that cut 98,000 jobs this year."

Output:
[
 {"label": "AMZN", "name": "Amazon.com Inc", "confidence": 0.95, "explanation": "Direct workforce layoffs signal cost-cutting, affects Amazon's operations and HR divisions."},
 {"label": "META", "name": "Meta Platforms Inc", "confidence": 0.55, "explanation": "Referenced as part of broader tech layoffs context, minor indirect sentiment impact."},
 {"label": "MSFT", "name": "Microsoft Corp", "confidence": 0.40, "explanation": "Part of mentioned tech layoff wave, small indirect sector correlation."}
]

---

Input: "McDonald's is struggling to hold on to its low-income customers: The company's CEO cited an industrywide traffic decline from lower-earning consumers."

Output:
[
 {"label": "MCD", "name": "McDonald's Corp", "confidence": 0.92, "explanation": "Direct impact on revenue from lower-income consumer base."},
 {"label": "YUM", "name": "Yum! Brands Inc", "confidence": 0.45, "explanation": "Indirect fast-food sector correlation, similar price-point audience affected."}
]

---

RULES:
1. Response must be valid JSON array ONLY, absolutely no other text
2. Each object must include: "label", "name", "confidence", "explanation"
3. Confidence: float 0.00-1.00 (two decimals)
4. Include direct and indirect companies, ranked by confidence (descending)
5. If no tickers found: [{"label":"UNKNOWN","name":"UNKNOWN","confidence":0.10,"explanation":"No relevant publicly traded company identified."}]
6. Explanation: factual, 20 words or fewer, no speculation or sentiment
7. Maximum 200 tokens
8. List results in descending order of confidence

PROCESS THIS INPUT:
\""""

_PROMPT_TAIL = """\"

REMINDER: Output ONLY the JSON array with no additional text."""


def build_prompt(content: str) -> str:
    return _PROMPT_HEAD + content + _PROMPT_TAIL


class EntityLabelSchema(BaseModel):
    """One entry of the classifier's JSON array."""

    label: str = Field(description="Ticker symbol or UNKNOWN")
    name: str = Field(default="", description="Company name")
    confidence: float = Field(default=0.0, description="0.0-1.0, clamped")
    explanation: str = Field(default="", description="Short justification")

    @field_validator("label")
    @classmethod
    def normalize_label(cls, v: str) -> str:
        v = (v or "").strip().lstrip("$").upper()
        if not v:
            raise ValueError("label must not be empty")
        return v

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:
        try:
            f = float(v)
        except (TypeError, ValueError):
            return 0.0
        return max(0.0, min(1.0, f))

    def to_label(self) -> EntityLabel:
        return EntityLabel(
            label=self.label,
            name=self.name,
            confidence=self.confidence,
            explanation=self.explanation,
        )


def strip_code_fences(text: str) -> str:
    return text.replace("```json", "").replace("```", "").strip()


def parse_labels(text: str) -> List[EntityLabel]:
    """Extract and validate the outermost JSON array in ``text``."""
    cleaned = strip_code_fences(text or "")
    start = cleaned.find("[")
    end = cleaned.rfind("]")
    if start == -1 or end == -1 or end < start:
        raise ClassificationError("no JSON array in classifier response")
    try:
        data = json.loads(cleaned[start : end + 1])
    except json.JSONDecodeError as e:
        raise ClassificationError(f"invalid JSON from classifier: {e}") from e
    if not isinstance(data, list):
        raise ClassificationError("classifier response is not a list")
    try:
        return [EntityLabelSchema.model_validate(obj).to_label() for obj in data]
    except ValidationError as e:
        raise ClassificationError(f"classifier entry failed validation: {e}") from e


def _response_text(response: Any) -> str:
    try:
        return response.text or ""
    except ValueError as e:
        # .text raises when a safety block left no candidate parts
        raise ClassificationError(f"classifier returned no text: {e}") from e


class EntityClassifier:
    def __init__(
        self,
        api_key: str = "",
        model: str = "gemini-2.5-flash",
        max_attempts: int = 3,
        timeout: float = 30.0,
        temperature: float = 0.2,
        client: Any = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.model_name = model
        self.max_attempts = max(1, max_attempts)
        self.timeout = timeout
        self._sleep = sleep
        self._client = client
        if self._client is None and api_key:
            import google.generativeai as genai

            genai.configure(api_key=api_key)
            self._client = genai.GenerativeModel(
                model_name=model,
                generation_config={"temperature": temperature},
            )
        if self._client is None:
            log.warning("gemini_api_key_missing classifier_disabled")

    @classmethod
    def from_settings(cls, settings: Settings) -> "EntityClassifier":
        return cls(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            max_attempts=settings.entity_max_attempts,
            timeout=settings.entity_timeout_seconds,
        )

    async def _generate(self, prompt: str) -> str:
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self._client.generate_content, prompt),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ClassificationError(
                f"classifier timed out after {self.timeout:.0f}s"
            ) from e
        text = _response_text(response)
        if not text:
            raise ClassificationError("empty response from classifier")
        return text

    async def classify(self, content: str) -> List[EntityLabel]:
        if self._client is None:
            raise ClassificationError("GEMINI_API_KEY not set")

        prompt = build_prompt(content)
        for attempt in range(self.max_attempts):
            try:
                text = await self._generate(prompt)
            except _RETRYABLE as e:
                if attempt == self.max_attempts - 1:
                    raise ClassificationUnavailableError(
                        f"classifier unavailable after {self.max_attempts} attempts: {e}"
                    ) from e
                delay = 2 ** (attempt + 1)
                log.info(
                    "classifier_retry attempt=%d/%d delay=%ds err=%s",
                    attempt + 1,
                    self.max_attempts,
                    delay,
                    e.__class__.__name__,
                )
                await self._sleep(delay)
                continue
            except ClassificationError:
                raise
            except Exception as e:
                raise ClassificationError(f"classifier call failed: {e}") from e

            labels = parse_labels(text)
            log.debug(
                "classifier_ok model=%s labels=%s",
                self.model_name,
                ",".join(lab.label for lab in labels),
            )
            return labels

        raise ClassificationError("classifier retries exhausted")
