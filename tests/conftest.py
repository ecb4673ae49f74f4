"""Shared test fixtures for the receipt OCR test suite."""

from pathlib import Path

import cv2
import numpy as np
import pytest

from src.ocr.base import RecognitionEngine, SourceImage

BRL_RECEIPT_TEXT = """SUPERMERCADO BOM PRECO
CNPJ 12.345.678/0001-90
Rua das Flores 100
CUPOM FISCAL 123456
Data: 05/03/2024 14:30
2 ARROZ 5KG 19,90
1 FEIJAO PRETO 8,50
1 CAFE 500G 17,50
TOTAL R$ 45,90
PAGAMENTO: CARTAO DE CREDITO
"""


class FakeEngine(RecognitionEngine):
    """Engine returning canned text, counting how often it really ran."""

    def __init__(
        self,
        engine_id: str,
        text: str = "",
        confidence: float = 0.8,
        error: Exception | None = None,
        technique: str = "original",
        cache=None,
    ) -> None:
        super().__init__(cache)
        self.engine_id = engine_id
        self.text = text
        self.confidence = confidence
        self.error = error
        self.technique = technique
        self.calls = 0

    def _recognize(self, source: SourceImage) -> tuple[str, float, str]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.text, self.confidence, self.technique


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.zeros((200, 300), dtype=np.uint8)
    image[50:150, 50:250] = 255
    return image


@pytest.fixture
def sample_color_image() -> np.ndarray:
    """Create a simple synthetic BGR test image."""
    image = np.zeros((200, 300, 3), dtype=np.uint8)
    image[50:150, 50:250] = (255, 255, 255)
    return image


@pytest.fixture
def receipt_image_path(tmp_path: Path) -> Path:
    """Write a synthetic receipt-like PNG and return its path."""
    image = np.full((400, 300, 3), 235, dtype=np.uint8)
    for row in range(40, 360, 40):
        cv2.putText(
            image,
            "ITEM 9,90",
            (20, row),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.7,
            (20, 20, 20),
            2,
        )
    path = tmp_path / "receipt.png"
    cv2.imwrite(str(path), image)
    return path


@pytest.fixture
def brl_receipt_text() -> str:
    """Return clean OCR text of a Brazilian supermarket receipt."""
    return BRL_RECEIPT_TEXT


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"


@pytest.fixture
def make_engine() -> type[FakeEngine]:
    """Return the fake engine class for building canned engines."""
    return FakeEngine
