from __future__ import annotations

import logging
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import List, Optional, Protocol

import fitz  # PyMuPDF
from pypdf import PdfReader

from .errors import CollaboratorError, UnsupportedFileTypeError

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = frozenset({".txt", ".rtf", ".md"})
PDF_EXTENSIONS = frozenset({".pdf"})
IMAGE_EXTENSIONS = frozenset({".tiff", ".tif", ".jpg", ".jpeg", ".png"})
# Stored as documents, but nothing can read their text yet.
OFFICE_EXTENSIONS = frozenset({".doc", ".docx", ".odf"})
SUPPORTED_EXTENSIONS = TEXT_EXTENSIONS | PDF_EXTENSIONS | IMAGE_EXTENSIONS | OFFICE_EXTENSIONS


def is_supported(path: Path) -> bool:
    return path.suffix.lower() in SUPPORTED_EXTENSIONS


class OcrClient(Protocol):
    def recognize(self, image: bytes, filename: str) -> str:
        ...


class PageRenderer(Protocol):
    def render(self, document: bytes) -> List[bytes]:
        """Return one PNG image per page."""
        ...


def read_pdf_text_layer(data: bytes) -> str:
    reader = PdfReader(BytesIO(data))
    return "\n".join(page.extract_text() or "" for page in reader.pages).strip()


class FitzPageRenderer:
    """
    Local page renderer backed by PyMuPDF.
    """

    def __init__(self, dpi: int = 150):
        self.dpi = dpi

    def render(self, document: bytes) -> List[bytes]:
        try:
            doc = fitz.open(stream=document, filetype="pdf")
        except Exception as exc:  # noqa: BLE001
            raise CollaboratorError(f"unable to open PDF for rendering: {exc}") from exc
        images: List[bytes] = []
        try:
            scale = self.dpi / 72.0
            for idx in range(doc.page_count):
                page = doc.load_page(idx)
                pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale))
                images.append(pix.tobytes("png"))
        finally:
            doc.close()
        if not images:
            raise CollaboratorError("no pages could be rendered from PDF")
        return images


@dataclass
class ExtractionResult:
    text: str
    strategy: str
    warnings: List[str] = field(default_factory=list)


class TextExtractor:
    """
    Best-effort text extraction. Strategy depends on the file type:

    * plain text formats are read directly;
    * PDFs try the native text layer first and fall back to rendering every
      page and running OCR on each image;
    * images go straight to OCR.

    Collaborator failures never escape: they degrade to empty text and a
    warning on the result. The only error raised is for unsupported types.
    """

    def __init__(
        self,
        ocr_client: Optional[OcrClient] = None,
        renderer: Optional[PageRenderer] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.ocr_client = ocr_client
        self.renderer = renderer or FitzPageRenderer()
        self.log = logger or logging.getLogger(__name__)

    def ensure_supported(self, path: Path) -> None:
        if not is_supported(path):
            raise UnsupportedFileTypeError(path)

    def extract(self, path: Path) -> ExtractionResult:
        self.ensure_supported(path)
        ext = path.suffix.lower()
        result = ExtractionResult(text="", strategy="none")
        try:
            data = path.read_bytes()
        except OSError as exc:
            self._warn(result, f"unable to read {path.name}: {exc}")
            return result

        if ext in TEXT_EXTENSIONS:
            result.strategy = "plain_text"
            result.text = data.decode("utf-8", errors="replace")
        elif ext in PDF_EXTENSIONS:
            self._extract_pdf(path, data, result)
        elif ext in IMAGE_EXTENSIONS:
            result.strategy = "image_ocr"
            result.text = self._ocr(data, path.name, result)
        else:
            self._warn(result, f"text extraction not supported for {ext} files, storing {path.name} without text")
        return result

    def _extract_pdf(self, path: Path, data: bytes, result: ExtractionResult) -> None:
        try:
            text = read_pdf_text_layer(data)
        except Exception as exc:  # noqa: BLE001
            self.log.info("Native PDF text extraction failed for %s, sending to OCR: %s", path.name, exc)
            text = ""
        if text:
            result.strategy = "pdf_text_layer"
            result.text = text
            self.log.info("Text processed from PDF without OCR: %s", path.name)
            return

        result.strategy = "pdf_ocr"
        if self.ocr_client is None:
            self.log.info("OCR not configured, storing %s without text", path.name)
            return
        try:
            pages = self.renderer.render(data)
        except Exception as exc:  # noqa: BLE001
            self._warn(result, f"page rendering failed for {path.name}: {exc}")
            return
        texts = []
        for number, image in enumerate(pages, start=1):
            page_text = self._ocr(image, f"{path.stem}-page{number}.png", result)
            if page_text:
                texts.append(page_text)
        result.text = "\n".join(texts)

    def _ocr(self, image: bytes, filename: str, result: ExtractionResult) -> str:
        if self.ocr_client is None:
            self.log.info("OCR not configured, skipping OCR for %s", filename)
            return ""
        try:
            text = self.ocr_client.recognize(image, filename) or ""
        except Exception as exc:  # noqa: BLE001
            self._warn(result, f"OCR failed for {filename}, storing without text: {exc}")
            return ""
        if not text.strip():
            self.log.info("OCR returned no text for %s (blank, handwritten or image-only)", filename)
        return text.strip()

    def _warn(self, result: ExtractionResult, message: str) -> None:
        result.warnings.append(message)
        self.log.warning(message)
