"""Receipt processing pipeline.

Validates the input file, recognizes text with one engine or the engine
ensemble depending on the processing profile, optionally runs structural
analysis, extracts and validates the receipt record, and assembles the
final result with diagnostics. Failures never cross this boundary as
exceptions: they come back as a failed ``ProcessingResult``.
"""

import tempfile
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from src.extraction.field_extractor import FieldExtractor, ReceiptRecord
from src.extraction.structure_analyzer import StructureAnalyzer, StructureResult
from src.ocr.base import RecognitionEngine, SourceImage
from src.ocr.cache import RecognitionCache, SourceFingerprint
from src.ocr.ensemble import ConsensusResult, EnsembleCoordinator, combine
from src.ocr.multi_technique import MultiTechniqueEngine
from src.ocr.pdf_handler import PDFHandler
from src.ocr.tesseract_cli import TesseractCliEngine
from src.ocr.tesseract_engine import TesseractAdapter, make_tesseract_pool
from src.preprocessing.pipeline import Preprocessor
from src.utils.config import PROFILES, AppConfig
from src.utils.errors import EnsembleExhaustedError, StructureAnalysisError
from src.utils.logger import get_logger, log_duration
from src.validation.rules_engine import ReceiptValidator, ValidationReport

from .file_validator import FileValidator
from .profiles import ProcessingProfile

logger = get_logger(__name__)

MAXIMUM_CONFIDENCE_CAP = 0.95
STRUCTURE_CONFIDENCE_WEIGHT = 0.1


@dataclass
class ProcessingResult:
    """Outcome of one ``process_receipt`` call."""

    success: bool
    extracted_text: str
    parsed_data: ReceiptRecord | None
    confidence: float
    processing_time_ms: float
    technique: str | None
    profile: str
    diagnostics: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    validation: ValidationReport | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-friendly primitives."""
        return {
            "success": self.success,
            "extracted_text": self.extracted_text,
            "parsed_data": self.parsed_data.to_dict() if self.parsed_data else None,
            "confidence": round(self.confidence, 3),
            "processing_time_ms": round(self.processing_time_ms, 1),
            "technique": self.technique,
            "profile": self.profile,
            "diagnostics": self.diagnostics,
            "error": self.error,
            "validation": self.validation.to_dict() if self.validation else None,
        }


def _tables_metadata(structures: StructureResult) -> tuple[dict[str, Any], ...]:
    return tuple(
        {
            "rows": [row.raw_text for row in table.rows],
            "column_count": table.column_count,
            "confidence": round(table.confidence, 3),
        }
        for table in structures.tables
    )


def _price_breakdown(structures: StructureResult) -> tuple[dict[str, Any], ...]:
    return tuple(
        {
            "description": element.fields.description or element.raw_text,
            "amount": element.fields.price or 0.0,
            "currency": element.fields.currency,
            "confidence": round(element.role_confidence, 3),
        }
        for element in structures.prices
    )


class ReceiptPipeline:
    """End-to-end receipt recognition pipeline.

    Owns the recognition cache and the Tesseract worker pool; use it as a
    context manager, or call ``close()``, to release the pool.

    Args:
        config: Application configuration.
        engines: Recognition engines to use instead of the configured ones.
        cache: Recognition cache to share; a new one is created when
            caching is enabled and none is given.
        weights: Engine trust weights; defaults to the configured weights.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        engines: Sequence[RecognitionEngine] | None = None,
        cache: RecognitionCache | None = None,
        weights: Mapping[str, float] | None = None,
    ) -> None:
        self.config = config or AppConfig()
        if cache is None and self.config.cache.enabled:
            cache = RecognitionCache()
        self.cache = cache

        self.pool = make_tesseract_pool(self.config.ocr)
        self.preprocessor = Preprocessor(self.config.preprocessing)
        self.engines = list(engines) if engines is not None else self._build_engines()

        if weights is None:
            weights = self.config.ocr.engine_weights()
        self.ensemble = EnsembleCoordinator(
            self.engines, weights, self.config.ocr.confidence_cap
        )

        self.file_validator = FileValidator(self.config.files)
        self.pdf_handler = PDFHandler(dpi=self.config.ocr.pdf_dpi)
        self.structure_analyzer = StructureAnalyzer()
        self.field_extractor = FieldExtractor(self.config.extraction)
        self.validator = ReceiptValidator(self.config.validation)

    def __enter__(self) -> "ReceiptPipeline":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Release engines and the worker pool."""
        for engine in self.engines:
            engine.close()
        self.pool.close()

    def _build_engines(self) -> list[RecognitionEngine]:
        """Instantiate the enabled engines named in configuration."""
        factories = {
            "tesseract": lambda: TesseractAdapter(self.pool, self.cache),
            "tesseract-cli": lambda: TesseractCliEngine(self.config.ocr, self.cache),
            "multi-technique": lambda: MultiTechniqueEngine(
                self.preprocessor, self.pool, self.cache
            ),
        }
        engines: list[RecognitionEngine] = []
        for engine_config in self.config.ocr.engines:
            if not engine_config.enabled:
                continue
            factory = factories.get(engine_config.name)
            if factory is None:
                logger.warning(
                    "Unknown engine in configuration: %s", engine_config.name
                )
                continue
            engines.append(factory())
        logger.info("Enabled engines: %s", [e.engine_id for e in engines])
        return engines

    def _fast_engine(self) -> RecognitionEngine:
        for engine in self.engines:
            if engine.engine_id == self.config.ocr.fast_engine:
                return engine
        if not self.engines:
            raise EnsembleExhaustedError("No recognition engine is enabled")
        return self.engines[0]

    def system_status(self) -> dict[str, Any]:
        """Describe engines, profiles, cache, and file limits."""
        return {
            "engines": self.ensemble.engine_status(),
            "profiles": list(PROFILES),
            "default_profile": self.config.default_profile,
            "fast_engine": self.config.ocr.fast_engine,
            "max_workers": self.config.ocr.max_workers,
            "cache": self.cache.stats() if self.cache is not None else None,
            "supported_formats": list(self.config.files.extensions),
            "max_file_size": self.config.files.max_size_bytes,
        }

    def process_receipt(
        self,
        image_path: Path | str,
        profile: ProcessingProfile | str | None = None,
    ) -> ProcessingResult:
        """Process one receipt file.

        Args:
            image_path: Image or PDF to process. It is only read.
            profile: Processing profile; defaults to the configured one.

        Returns:
            The processing result. Never raises: any failure yields
            ``success=False`` with ``error`` set and no parsed data.
        """
        start = time.perf_counter()
        path = Path(image_path)
        profile_name = str(profile or self.config.default_profile)
        diagnostics: dict[str, Any] = {"file": path.name}

        try:
            selected = ProcessingProfile(profile_name)
            self.file_validator.validate(path)

            with log_duration(logger, "Recognition"):
                consensus = self._recognize(path, selected)
            diagnostics["recognition"] = {
                "method": consensus.method,
                "engines": [r.engine_id for r in consensus.contributing],
                "selected_engine": consensus.selected_engine,
                "agreement_score": round(consensus.agreement_score, 3),
                "ocr_confidence": round(consensus.confidence, 3),
                "failed_engines": consensus.details.get("failed_engines", []),
            }
            if not consensus.contributing:
                raise EnsembleExhaustedError(
                    f"No engine produced text for {path.name} ({consensus.method})"
                )

            with log_duration(logger, "Extraction"):
                record = self._extract(consensus.text, selected, diagnostics)
            validation = self.validator.validate(record)
        except Exception as exc:
            logger.exception("Processing failed for %s", path.name)
            return ProcessingResult(
                success=False,
                extracted_text="",
                parsed_data=None,
                confidence=0.0,
                processing_time_ms=(time.perf_counter() - start) * 1000,
                technique=None,
                profile=profile_name,
                diagnostics=diagnostics,
                error=str(exc),
            )

        if self.cache is not None:
            diagnostics["cache"] = self.cache.stats()

        confidence = min(consensus.confidence, record.confidence)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "Processed %s with profile %s in %.0f ms: amount %.2f %s, confidence %.2f",
            path.name,
            selected,
            elapsed_ms,
            record.amount,
            record.currency,
            confidence,
        )
        return ProcessingResult(
            success=True,
            extracted_text=consensus.text,
            parsed_data=record,
            confidence=confidence,
            processing_time_ms=elapsed_ms,
            technique=consensus.technique,
            profile=str(selected),
            diagnostics=diagnostics,
            validation=validation,
        )

    def _recognize(self, path: Path, profile: ProcessingProfile) -> ConsensusResult:
        """Recognize text with the engines the profile calls for.

        PDFs are rasterized to a temporary PNG that is removed afterwards;
        cache entries stay keyed by the PDF's own fingerprint.
        """
        fingerprint = SourceFingerprint.of(path)
        with tempfile.TemporaryDirectory(prefix="receipt-ocr-pdf-") as tmp:
            image_path = path
            if path.suffix.lower() == ".pdf":
                image_path = self.pdf_handler.rasterize_first_page(path, Path(tmp))
            source = SourceImage(path=image_path, fingerprint=fingerprint)

            if profile is ProcessingProfile.FAST:
                engine = self._fast_engine()
                weights = {engine.engine_id: 1.0}
                return combine([engine.recognize(source)], weights)
            return self.ensemble.run(source)

    def _extract(
        self, text: str, profile: ProcessingProfile, diagnostics: dict[str, Any]
    ) -> ReceiptRecord:
        """Build the receipt record, with structural analysis when profiled."""
        if profile in (ProcessingProfile.FAST, ProcessingProfile.BALANCED):
            return self.field_extractor.extract(text, extraction_method=str(profile))

        try:
            structures = self.structure_analyzer.detect(text)
        except StructureAnalysisError as exc:
            logger.warning("Structure analysis failed, using plain extraction: %s", exc)
            diagnostics["structure_error"] = str(exc)
            return self.field_extractor.extract(
                text, extraction_method="accurate_fallback"
            )

        diagnostics["structure"] = dict(structures.summary)
        diagnostics["structure"]["confidence"] = round(structures.confidence, 3)

        if profile is ProcessingProfile.ACCURATE:
            return self.field_extractor.extract(
                text, structures, extraction_method="structured"
            )

        record = self.field_extractor.extract(
            text, structures, extraction_method="maximum"
        )
        boosted = min(
            record.confidence + structures.confidence * STRUCTURE_CONFIDENCE_WEIGHT,
            MAXIMUM_CONFIDENCE_CAP,
        )
        return replace(
            record,
            tables=_tables_metadata(structures),
            price_breakdown=_price_breakdown(structures),
            structure_confidence=structures.confidence,
            confidence=boosted,
        )
