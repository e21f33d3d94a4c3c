"""
Main pipeline: model name → published product image.

    cache lookup → source search → download → structural check
    → vision check → normalize → cache write
"""

from __future__ import annotations

import asyncio
import functools
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from config.settings import AppConfig
from imaging.cache import ImageCache
from imaging.downloader import ImageDownloader
from imaging.normalizer import ImageNormalizer
from imaging.validator import StructuralValidator
from imaging.verifier import SemanticVerifier, Verdict
from sources.base import ImageResult, ImageSource
from sources.manager import SourceManager
from utils.concurrency import AtomicCounter
from utils.exceptions import (
    ImageNotFoundError,
    ProcessingError,
    SemanticRejection,
    SemanticUnavailableError,
    SourceError,
    StructuralRejection,
    TransientNetworkError,
)
from utils.log_config import get_logger
from utils.retry import RetryPolicy, Sleeper, retry_call
from utils.text_cleaner import clean_query

log = get_logger(__name__)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  RESULT TYPES
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class ValidationStatus(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    BYPASSED = "bypassed"
    FAILED   = "failed_to_validate"
    NA       = "n/a"


class Outcome(str, Enum):
    CACHED       = "cached"
    SUCCESS      = "success"
    NOT_FOUND    = "not_found"
    SOURCE_ERROR = "source_error"


@dataclass
class PipelineResult:
    success:             bool
    model:               str
    source:              Optional[str]    = None
    final_path:          Optional[Path]   = None
    error:               Optional[str]    = None
    outcome:             Outcome          = Outcome.NOT_FOUND
    validation_status:   ValidationStatus = ValidationStatus.NA
    raw_download_path:   Optional[Path]   = None
    validator_input_path: Optional[Path]  = None
    approved_raw_path:   Optional[Path]   = None
    rejected_path:       Optional[Path]   = None
    original_image_url:  Optional[str]    = None

    def artifacts(self) -> Dict[str, Optional[Path]]:
        return {
            "raw-download":    self.raw_download_path,
            "validator-input": self.validator_input_path,
            "approved-raw":    self.approved_raw_path,
            "rejected":        self.rejected_path,
        }

    def raise_for_outcome(self) -> Path:
        """Final path, or ``ImageNotFoundError`` for a failed resolve."""
        if not self.success or self.final_path is None:
            raise ImageNotFoundError(self.error or f"No image for '{self.model}'")
        return self.final_path


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  STATISTICS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class Stats:
    def __init__(self) -> None:
        self.requests      = AtomicCounter()
        self.cache_hits    = AtomicCounter()
        self.success       = AtomicCounter()
        self.not_found     = AtomicCounter()
        self.source_faults = AtomicCounter()
        self.bypassed      = AtomicCounter()
        self._t0           = time.monotonic()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "requests":      self.requests.value,
            "cache_hits":    self.cache_hits.value,
            "success":       self.success.value,
            "not_found":     self.not_found.value,
            "source_faults": self.source_faults.value,
            "bypassed":      self.bypassed.value,
            "uptime_s":      round(time.monotonic() - self._t0, 1),
        }


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#  PIPELINE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class ShoeImagePipeline:
    """
    One instance per process.  Every collaborator can be injected; the
    defaults are built from *cfg*.
    """

    def __init__(
        self,
        cfg: AppConfig,
        *,
        sources: Optional[Sequence[ImageSource]] = None,
        cache: Optional[ImageCache] = None,
        downloader: Optional[ImageDownloader] = None,
        validator: Optional[StructuralValidator] = None,
        verifier: Optional[SemanticVerifier] = None,
        normalizer: Optional[ImageNormalizer] = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.cfg = cfg
        cfg.validate()

        self.executor = ThreadPoolExecutor(
            max_workers=cfg.pipeline.max_workers,
            thread_name_prefix="shoeimg",
        )
        self._manager: Optional[SourceManager] = None
        if sources is None:
            self._manager = SourceManager(cfg)
            sources = self._manager.sources
        self.sources: List[ImageSource] = list(sources)

        self.cache      = cache or ImageCache(cfg.paths.images_dir, cfg.paths.index_file)
        self.downloader = downloader or ImageDownloader(cfg.download, self.executor, sleep)
        self.validator  = validator or StructuralValidator(cfg.structural)
        self.verifier   = verifier or SemanticVerifier(cfg.semantic)
        self.normalizer = normalizer or ImageNormalizer(cfg.output)
        self.stats      = Stats()

        self._sleep = sleep
        self._semantic_policy = RetryPolicy(
            max_attempts=cfg.semantic.max_retries,
            initial_delay=cfg.semantic.initial_delay,
        )

    # ── public ──────────────────────────────────────────────

    async def resolve(self, model: str) -> PipelineResult:
        model = clean_query(model)
        self.stats.requests.increment()

        cached = self.cache.lookup(model)
        if cached is not None:
            self.stats.cache_hits.increment()
            log.info("Cache hit for '%s' → %s", model, cached.name)
            return PipelineResult(
                success=True,
                model=model,
                source="cache",
                final_path=cached,
                outcome=Outcome.CACHED,
            )

        log.info("Resolving '%s'", model)
        last: Optional[PipelineResult] = None
        faults: List[str] = []
        seen = 0

        for source in self.sources:
            try:
                candidates = await source.find(model)
            except SourceError as exc:
                self.stats.source_faults.increment()
                log.error("Source failed, trying next: %s", exc)
                faults.append(str(exc))
                continue

            seen += len(candidates)
            for i, candidate in enumerate(candidates, 1):
                log.debug("%s candidate %d/%d: %s", source.name, i, len(candidates), candidate.url)
                try:
                    attempt = await self.download_and_validate(candidate, model)
                except Exception as exc:
                    log.exception("Unexpected failure on candidate %s", candidate.url)
                    attempt = PipelineResult(
                        success=False,
                        model=model,
                        source=candidate.source,
                        original_image_url=candidate.url,
                        error=f"Unexpected error: {exc}",
                    )
                if attempt.success:
                    self.stats.success.increment()
                    return attempt
                last = attempt

        self.stats.not_found.increment()
        result = last or PipelineResult(success=False, model=model)
        result.success = False
        result.final_path = None

        if seen == 0 and self.sources and len(faults) == len(self.sources):
            result.outcome = Outcome.SOURCE_ERROR
            result.error = "All image sources failed: " + "; ".join(faults)
        else:
            result.outcome = Outcome.NOT_FOUND
            detail = f" (last error: {last.error})" if last and last.error else ""
            result.error = f"No valid product image found for '{model}'{detail}"

        log.warning("%s: %s", result.outcome.value, result.error)
        return result

    async def download_and_validate(
        self,
        candidate: ImageResult,
        model: str,
    ) -> PipelineResult:
        """
        Run one candidate through every stage.  Never raises for
        candidate-local faults; the returned result carries the error.
        """
        result = PipelineResult(
            success=False,
            model=model,
            source=candidate.source,
            original_image_url=candidate.url,
        )

        try:
            data = await self.downloader.download(candidate.url)
        except TransientNetworkError as exc:
            result.error = (
                f"Download failed after {self.cfg.download.max_retries} attempt(s): {exc}"
            )
            log.warning("%s", result.error)
            return result
        result.raw_download_path = await self._save_artifact(model, "raw-download", data)

        try:
            if not await self._in_pool(self.validator.is_structurally_valid, data):
                raise StructuralRejection("border is not near-white")

            result.validator_input_path = await self._save_artifact(model, "validator-input", data)
            verdict = await self._semantic_check(data, model, result)

            try:
                processed = await self._in_pool(self.normalizer.normalize, data, verdict)
                final = await self._in_pool(self.cache.store, model, verdict, processed)
            except ProcessingError:
                raise
            except Exception as exc:
                raise ProcessingError(str(exc)) from exc

        except StructuralRejection as exc:
            result.error = f"Structural validation failed: {exc}"
            log.info("✗ %s (%s)", result.error, candidate.url[:80])
            return result
        except (SemanticRejection, SemanticUnavailableError) as exc:
            result.error = str(exc)
            log.info("✗ %s (%s)", result.error, candidate.url[:80])
            return result
        except ProcessingError as exc:
            result.error = f"Processing error: {exc}"
            log.error("%s (%s)", result.error, candidate.url[:80])
            return result

        result.success = True
        result.final_path = final
        result.model = verdict.canonical_model or model
        result.outcome = Outcome.SUCCESS
        result.error = None
        log.info("✓ '%s' → %s via %s", model, final.name, candidate.source)
        return result

    async def close(self) -> None:
        if self._manager is not None:
            await self._manager.close()
        else:
            for source in self.sources:
                await source.close()
        self.executor.shutdown(wait=False, cancel_futures=True)

    # ── internals ───────────────────────────────────────────

    async def _semantic_check(
        self,
        data: bytes,
        model: str,
        result: PipelineResult,
    ) -> Verdict:
        """
        Accepted ``Verdict`` (approved or bypassed), else raises
        ``SemanticRejection`` / ``SemanticUnavailableError``.
        """
        try:
            verdict = await retry_call(
                lambda: self.verifier.classify(data, model),
                self._semantic_policy,
                retry_on=(SemanticUnavailableError,),
                sleep=self._sleep,
                label=f"semantic check '{model}'",
            )
        except SemanticUnavailableError as exc:
            log.warning(
                "Vision model unavailable after %d attempt(s): %s",
                self._semantic_policy.max_attempts, exc,
            )
            if not self.cfg.semantic.bypass_on_failure:
                result.validation_status = ValidationStatus.FAILED
                raise SemanticUnavailableError(
                    f"Semantic validation failed after "
                    f"{self._semantic_policy.max_attempts} attempt(s): {exc}"
                ) from exc

            self.stats.bypassed.increment()
            result.validation_status = ValidationStatus.BYPASSED
            bypass_path = await self._save_artifact(model, "bypassed-input", data)
            if bypass_path is not None:
                result.validator_input_path = bypass_path
            log.warning("Bypassing semantic validation for '%s'", model)
            return Verdict.bypassed(model)

        if verdict is None:
            result.validation_status = ValidationStatus.REJECTED
            result.rejected_path = await self._save_artifact(model, "rejected", data)
            raise SemanticRejection("Vision model rejected the image")

        result.validation_status = ValidationStatus.APPROVED
        result.approved_raw_path = await self._save_artifact(model, "approved-raw", data)
        return verdict

    async def _in_pool(self, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, functools.partial(fn, *args))

    async def _save_artifact(self, model: str, stage: str, data: bytes) -> Optional[Path]:
        if not self.cfg.pipeline.save_intermediate:
            return None
        return await self._in_pool(self.cache.store_intermediate, model, stage, data)
