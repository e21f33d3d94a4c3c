"""
Gemini vision check: is this really the requested shoe, shot from the side?

Flow:
    1. Send the image bytes plus a fixed prompt to Gemini (JSON mode)
    2. Parse the JSON reply into a ``Verdict``
    3. ``usable: false``, blocked replies and malformed JSON are rejections
    4. Timeouts and API errors raise ``SemanticUnavailableError`` so the
       pipeline can retry or bypass
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

import google.generativeai as genai
from google.generativeai.types import (
    BlockedPromptException,
    StopCandidateException,
)

from config.settings import SemanticConfig
from imaging.helpers import detect_mime
from utils.exceptions import SemanticUnavailableError
from utils.log_config import get_logger

log = get_logger(__name__)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  RESULT TYPES
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class VerdictStatus(str, Enum):
    APPROVED            = "approved"
    BYPASSED            = "bypassed"


@dataclass
class Verdict:
    """What the vision model said about one image."""

    status:          VerdictStatus
    brand:           str        = ""
    canonical_model: str        = ""
    keywords:        List[str]  = field(default_factory=list)
    rotate:          bool       = False

    @classmethod
    def bypassed(cls, model: str) -> "Verdict":
        """Stand-in used when the vision model could not be reached."""
        return cls(
            status=VerdictStatus.BYPASSED,
            brand="Unknown",
            canonical_model=model,
        )

    def summary(self) -> str:
        mark = "✅" if self.status is VerdictStatus.APPROVED else "⚠️"
        parts = [f"{mark} {self.status.value}"]
        if self.brand or self.canonical_model:
            parts.append(f"{self.brand} {self.canonical_model}".strip())
        if self.keywords:
            parts.append(", ".join(self.keywords))
        if self.rotate:
            parts.append("rotate")
        return " | ".join(parts)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  PROMPT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

_PROMPT = """\
You are a quality-control assistant for {store}, an online barefoot shoe store.
The user searched for the shoe model: "{model}".

Look at the image and answer ONLY with a JSON object of this exact shape:
{{
  "usable": boolean,
  "brand": string,
  "model": string,
  "keywords": [string],
  "rotate": boolean
}}

Rules:
- "usable" is true only if the image shows exactly ONE shoe (not a pair),
  photographed from the side (lateral or medial profile), on a plain white
  or near-white background, with no people, feet, text overlays or
  watermarks, and the shoe plausibly matches "{model}".
- "brand" is the shoe brand, "model" the full official product name.
- "keywords" lists up to {max_keywords} short descriptive keywords
  (colour, material, style).
- "rotate" is true if the shoe is standing on its heel or toe and the
  image needs a 90 degree clockwise turn to show it lying flat.
"""


def build_prompt(model: str, store: str, max_keywords: int) -> str:
    return _PROMPT.format(model=model, store=store, max_keywords=max_keywords)


def _response_text(response: Any) -> str:
    # .text raises ValueError when the reply has no usable candidate
    try:
        return response.text or ""
    except ValueError:
        return ""


def _strip_fence(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[-1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  VERIFIER
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class SemanticVerifier:
    """
    Wraps one ``genai.GenerativeModel``.  The model is built lazily so a
    missing API key only surfaces when a classification is attempted.
    """

    def __init__(self, cfg: SemanticConfig, model: Any = None) -> None:
        self.cfg = cfg
        self._model = model

    @property
    def model(self) -> Any:
        if self._model is None:
            if not self.cfg.api_key:
                raise SemanticUnavailableError("GOOGLE_API_KEY is not set")
            genai.configure(api_key=self.cfg.api_key)
            self._model = genai.GenerativeModel(
                self.cfg.model_name,
                generation_config=genai.GenerationConfig(
                    response_mime_type="application/json",
                    temperature=self.cfg.temperature,
                ),
            )
            log.info("Gemini model ready: %s", self.cfg.model_name)
        return self._model

    async def classify(self, data: bytes, model_query: str) -> Optional[Verdict]:
        """
        Approved ``Verdict`` or ``None`` for a rejection.

        Raises ``SemanticUnavailableError`` on timeout or API failure.
        """
        prompt = build_prompt(model_query, self.cfg.store_name, self.cfg.max_keywords)
        image_part = {"mime_type": detect_mime(data), "data": data}

        try:
            response = await asyncio.wait_for(
                self.model.generate_content_async([image_part, prompt]),
                timeout=self.cfg.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise SemanticUnavailableError(
                f"Gemini call timed out after {self.cfg.timeout:.0f}s"
            ) from exc
        except (BlockedPromptException, StopCandidateException) as exc:
            log.info("Gemini blocked the request for '%s': %s", model_query, exc)
            return None
        except SemanticUnavailableError:
            raise
        except Exception as exc:
            raise SemanticUnavailableError(f"Gemini call failed: {exc}") from exc

        return self.parse_response(response, model_query)

    def parse_response(self, response: Any, model_query: str) -> Optional[Verdict]:
        text = _response_text(response)
        if not text:
            log.info("Gemini returned no text for '%s'", model_query)
            return None

        try:
            payload = json.loads(_strip_fence(text))
        except ValueError:
            log.warning("Gemini returned malformed JSON: %.120s", text)
            return None

        if not isinstance(payload, dict):
            log.warning("Gemini JSON is not an object: %.120s", text)
            return None

        if payload.get("usable") is not True:
            log.info("Gemini rejected image for '%s'", model_query)
            return None

        raw_keywords = payload.get("keywords")
        keywords = (
            [str(k).strip() for k in raw_keywords if str(k).strip()]
            if isinstance(raw_keywords, list) else []
        )

        verdict = Verdict(
            status=VerdictStatus.APPROVED,
            brand=str(payload.get("brand") or "").strip() or "Unknown",
            canonical_model=str(payload.get("model") or "").strip() or model_query,
            keywords=keywords[: self.cfg.max_keywords],
            rotate=payload.get("rotate") is True,
        )
        log.info("Gemini: %s", verdict.summary())
        return verdict
