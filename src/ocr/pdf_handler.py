"""PDF to image conversion for receipt recognition.

Receipts delivered as PDF are rasterized so that they can go through the
same preprocessing and OCR path as photographed receipts. Only the first
page is recognized.
"""

from pathlib import Path

from pdf2image import convert_from_path
from pdf2image.exceptions import (
    PDFInfoNotInstalledError,
    PDFPageCountError,
    PDFSyntaxError,
)
from pdf2image.pdf2image import pdfinfo_from_path

from src.utils.logger import get_logger

logger = get_logger(__name__)


class PDFHandler:
    """Handles PDF to image conversion for OCR processing.

    Args:
        dpi: Resolution for PDF rendering. Higher values produce
            better OCR results but use more memory.
    """

    def __init__(self, dpi: int = 300) -> None:
        self.dpi = dpi

    def rasterize_first_page(self, pdf_path: Path, output_dir: Path) -> Path:
        """Render the first page of a PDF to a PNG file.

        Args:
            pdf_path: Path to the PDF file.
            output_dir: Directory receiving the rendered page.

        Returns:
            Path of the written PNG.

        Raises:
            FileNotFoundError: If the PDF does not exist.
            RuntimeError: If PDF conversion fails or yields no page.
        """
        if not pdf_path.exists():
            raise FileNotFoundError(f"PDF file not found: {pdf_path}")

        try:
            pages = convert_from_path(
                str(pdf_path), dpi=self.dpi, first_page=1, last_page=1
            )
        except Exception as exc:
            raise RuntimeError(f"PDF conversion failed: {exc}") from exc

        if not pages:
            raise RuntimeError(f"PDF has no pages: {pdf_path}")

        out_path = output_dir / f"{pdf_path.stem}_page1.png"
        pages[0].save(out_path, format="PNG")
        logger.info("Rasterized %s page 1 at %d DPI", pdf_path.name, self.dpi)

        page_count = self.get_page_count(pdf_path)
        if page_count > 1:
            logger.warning(
                "%s has %d pages, only the first is recognized",
                pdf_path.name,
                page_count,
            )
        return out_path

    def get_page_count(self, pdf_path: Path) -> int:
        """Get the number of pages in a PDF without converting.

        Args:
            pdf_path: Path to the PDF file.

        Returns:
            Number of pages in the PDF, or 1 when the count is unavailable.
        """
        try:
            info = pdfinfo_from_path(str(pdf_path))
        except (PDFInfoNotInstalledError, PDFPageCountError, PDFSyntaxError) as exc:
            logger.debug("Could not read page count for %s: %s", pdf_path, exc)
            return 1
        count = int(info.get("Pages", 1))
        logger.debug("PDF %s has %d pages", pdf_path, count)
        return count
