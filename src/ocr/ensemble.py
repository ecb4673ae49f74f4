"""Ensemble consensus over several recognition engines.

Runs every enabled engine on the same image concurrently and votes the
results into one ``ConsensusResult``: the best-scoring text is kept, and
its confidence is the trust-weighted mean of all valid engines.
"""

from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any

from src.ocr.base import RecognitionEngine, RecognitionResult, SourceImage
from src.ocr.scoring import consensus_score
from src.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIDENCE_CAP = 0.95


@dataclass(frozen=True)
class ConsensusResult:
    """Voted output of an ensemble run."""

    text: str
    confidence: float
    agreement_score: float
    contributing: tuple[RecognitionResult, ...]
    method: str
    selected_engine: str | None = None
    technique: str = "original"
    details: dict[str, Any] = field(default_factory=dict)


def jaccard_similarity(a: str, b: str) -> float:
    """Jaccard index of the lower-cased whitespace token sets of two texts."""
    tokens_a = set(a.lower().split())
    tokens_b = set(b.lower().split())
    union = tokens_a | tokens_b
    if not union:
        return 1.0
    return len(tokens_a & tokens_b) / len(union)


def _agreement(valid: Sequence[RecognitionResult]) -> dict[str, float]:
    pairs = list(combinations(valid, 2))
    similarity = sum(jaccard_similarity(a.text, b.text) for a, b in pairs) / len(pairs)

    lengths = [len(r.text) for r in valid]
    length_consistency = (sum(lengths) / len(lengths)) / max(lengths)

    mean_confidence = sum(r.confidence for r in valid) / len(valid)

    agreement = 0.4 * similarity + 0.3 * length_consistency + 0.3 * mean_confidence
    return {
        "similarity": similarity,
        "length_consistency": length_consistency,
        "mean_confidence": mean_confidence,
        "agreement": max(0.0, min(1.0, agreement)),
    }


def combine(
    results: Sequence[RecognitionResult],
    weights: Mapping[str, float] | None = None,
    cap: float = DEFAULT_CONFIDENCE_CAP,
) -> ConsensusResult:
    """Vote per-engine results into one consensus.

    Errored and blank results are discarded first. A single survivor is
    returned verbatim with full agreement; several survivors are compared
    for agreement and the best-scoring one supplies the text.

    Args:
        results: Per-engine recognition results, in engine order.
        weights: Trust weight per engine id. Engines without a weight count
            as zero; if every survivor weighs zero they are weighted equally.
        cap: Upper bound on a multi-engine consensus confidence.

    Returns:
        The consensus result. Never raises.
    """
    if not results:
        return ConsensusResult(
            text="",
            confidence=0.0,
            agreement_score=0.0,
            contributing=(),
            method="no_results",
        )

    valid = [r for r in results if r.ok]
    failed = [r.engine_id for r in results if not r.ok]
    if not valid:
        return ConsensusResult(
            text="",
            confidence=0.0,
            agreement_score=0.0,
            contributing=(),
            method="all_failed",
            details={"failed_engines": failed},
        )

    if len(valid) == 1:
        only = valid[0]
        return ConsensusResult(
            text=only.text,
            confidence=only.confidence,
            agreement_score=1.0,
            contributing=(only,),
            method="single_result",
            selected_engine=only.engine_id,
            technique=only.technique,
            details={"failed_engines": failed},
        )

    metrics = _agreement(valid)

    best = valid[0]
    best_score = consensus_score(best.text, best.confidence)
    scores = {best.engine_id: best_score}
    for candidate in valid[1:]:
        score = consensus_score(candidate.text, candidate.confidence)
        scores[candidate.engine_id] = score
        if score > best_score:
            best, best_score = candidate, score

    weights = weights or {}
    engine_weights = [max(0.0, weights.get(r.engine_id, 0.0)) for r in valid]
    total_weight = sum(engine_weights)
    if total_weight <= 0:
        engine_weights = [1.0] * len(valid)
        total_weight = float(len(valid))
    weighted = (
        sum(w * r.confidence for w, r in zip(engine_weights, valid)) / total_weight
    )

    return ConsensusResult(
        text=best.text,
        confidence=min(weighted, cap),
        agreement_score=metrics["agreement"],
        contributing=tuple(valid),
        method="ensemble_consensus",
        selected_engine=best.engine_id,
        technique=best.technique,
        details={**metrics, "scores": scores, "failed_engines": failed},
    )


class EnsembleCoordinator:
    """Fans one image out to every engine and votes on the results.

    Each run uses its own thread pool; an engine task that raises is
    recorded as an errored result for that engine only.

    Args:
        engines: Enabled engines, in tie-breaking order.
        weights: Normalized trust weight per engine id.
        confidence_cap: Upper bound on multi-engine consensus confidence.
    """

    def __init__(
        self,
        engines: Sequence[RecognitionEngine],
        weights: Mapping[str, float] | None = None,
        confidence_cap: float = DEFAULT_CONFIDENCE_CAP,
    ) -> None:
        self.engines = list(engines)
        self.weights = dict(weights or {})
        self.confidence_cap = confidence_cap

    def run(self, source: SourceImage) -> ConsensusResult:
        """Recognize ``source`` with every engine and combine the results.

        Args:
            source: Image to recognize.

        Returns:
            Consensus over all engines that produced text.
        """
        if not self.engines:
            return combine([], self.weights, self.confidence_cap)

        by_engine: dict[str, RecognitionResult] = {}
        with ThreadPoolExecutor(max_workers=len(self.engines)) as executor:
            futures = {
                executor.submit(engine.recognize, source): engine
                for engine in self.engines
            }
            for future in as_completed(futures):
                engine = futures[future]
                try:
                    by_engine[engine.engine_id] = future.result()
                except Exception as exc:
                    logger.warning("Engine %s task failed: %s", engine.engine_id, exc)
                    by_engine[engine.engine_id] = RecognitionResult.failure(
                        engine.engine_id, str(exc)
                    )

        results = [by_engine[engine.engine_id] for engine in self.engines]
        consensus = combine(results, self.weights, self.confidence_cap)
        logger.info(
            "Ensemble on %s: %s from %d/%d engines, confidence %.2f, agreement %.2f",
            source.path.name,
            consensus.method,
            len(consensus.contributing),
            len(results),
            consensus.confidence,
            consensus.agreement_score,
        )
        return consensus

    def engine_status(self) -> list[dict[str, Any]]:
        """Describe each engine with its trust weight."""
        return [
            {
                "name": engine.engine_id,
                "weight": self.weights.get(engine.engine_id, 0.0),
            }
            for engine in self.engines
        ]
