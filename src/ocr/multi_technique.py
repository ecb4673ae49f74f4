"""Recognition across several preprocessed variants of one image.

Runs the preprocessor, recognizes each variant with a pooled Tesseract
worker, and keeps the variant whose output scores best.
"""

from src.ocr.base import RecognitionEngine, SourceImage, clamp_confidence
from src.ocr.cache import RecognitionCache
from src.ocr.scoring import variant_score
from src.ocr.tesseract_engine import TesseractEngine
from src.ocr.worker_pool import WorkerPool
from src.preprocessing.pipeline import Preprocessor
from src.utils.errors import RecognitionError
from src.utils.logger import get_logger

logger = get_logger(__name__)


class MultiTechniqueEngine(RecognitionEngine):
    """Recognition engine that tries every preprocessing technique.

    The reported technique is the name of the winning variant, or
    ``original`` when preprocessing fell back to the source image.

    Args:
        preprocessor: Produces the image variants.
        pool: Pool of Tesseract workers.
        cache: Optional shared recognition cache.
    """

    engine_id = "multi-technique"

    def __init__(
        self,
        preprocessor: Preprocessor,
        pool: WorkerPool[TesseractEngine],
        cache: RecognitionCache | None = None,
    ) -> None:
        super().__init__(cache)
        self.preprocessor = preprocessor
        self.pool = pool

    def _recognize(self, source: SourceImage) -> tuple[str, float, str]:
        best: tuple[float, str, float, str] | None = None

        variant_set = self.preprocessor.transform(source.path)
        diagnostics = list(variant_set.diagnostics)
        with variant_set as variants:
            for variant in variants:
                try:
                    with self.pool.checkout() as worker:
                        result = worker.extract_text(variant.path)
                except Exception as exc:
                    logger.warning("Variant %s failed: %s", variant.technique, exc)
                    diagnostics.append(f"{variant.technique} recognition failed: {exc}")
                    continue

                if not result.text.strip():
                    diagnostics.append(f"{variant.technique} produced no text")
                    continue

                confidence = clamp_confidence(result.confidence)
                score = variant_score(result.text, confidence)
                logger.debug("Variant %s scored %.3f", variant.technique, score)
                if best is None or score > best[0]:
                    best = (score, result.text, confidence, variant.technique)

        if best is None:
            raise RecognitionError(
                self.engine_id, "no variant produced text: " + "; ".join(diagnostics)
            )

        _, text, confidence, technique = best
        logger.info("Best variant for %s: %s", source.path.name, technique)
        return text, confidence, technique
