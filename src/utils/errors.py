"""Exception hierarchy for the receipt recognition pipeline."""


class ReceiptOCRError(Exception):
    """Base class for all pipeline errors."""


class FileValidationError(ReceiptOCRError):
    """Input file rejected before any recognition work (type, size, dimensions)."""


class TransformError(ReceiptOCRError):
    """A single preprocessing technique could not produce a variant."""

    def __init__(self, technique: str, message: str) -> None:
        super().__init__(f"{technique}: {message}")
        self.technique = technique


class RecognitionError(ReceiptOCRError):
    """An OCR engine failed to produce text for an image."""

    def __init__(self, engine_id: str, message: str) -> None:
        super().__init__(f"{engine_id}: {message}")
        self.engine_id = engine_id


class EnsembleExhaustedError(ReceiptOCRError):
    """No engine produced a usable recognition result."""


class StructureAnalysisError(ReceiptOCRError):
    """Structural inference over recognized text failed unexpectedly."""
