"""
Document analysis (OCR) providers.

The pipeline only requires analyze(); analyze_structured() is available for
providers that return tables, form fields and a classified type.

Providers: "local" reads UTF-8 text files, "tesseract" adds OCR for
scanned images and PDFs.
"""

import asyncio
import logging
import string
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from ..claims.errors import DocumentAnalysisError
from .classifier import DocumentClassifier

logger = logging.getLogger(__name__)


class DocumentAnalysis(BaseModel):
    """Basic analysis result: extracted text and a confidence score."""
    text: str = ""
    confidence: float = Field(ge=0.0, le=1.0)


class StructuredDocumentAnalysis(DocumentAnalysis):
    """Richer analysis result for providers that support layout extraction."""
    tables: List[List[List[str]]] = Field(default_factory=list)
    form_fields: Dict[str, str] = Field(default_factory=dict)
    classified_type: Optional[str] = None


class DocumentAnalyzer(ABC):
    """Base class for document analysis providers."""

    def __init__(self, classifier: Optional[DocumentClassifier] = None):
        self.classifier = classifier or DocumentClassifier()

    @abstractmethod
    async def analyze(self, locator: str) -> DocumentAnalysis:
        """
        Extract text from a stored document.

        Args:
            locator: Opaque storage locator (URI or path)

        Returns:
            DocumentAnalysis with extracted text and confidence in [0, 1]

        Raises:
            DocumentAnalysisError: if the document cannot be analyzed
        """
        pass

    async def analyze_structured(self, locator: str) -> StructuredDocumentAnalysis:
        """Structured analysis; defaults to basic analysis plus classification."""
        basic = await self.analyze(locator)
        return StructuredDocumentAnalysis(
            text=basic.text,
            confidence=basic.confidence,
            classified_type=self.classifier.classify_text(basic.text),
        )


def _local_path(locator: str) -> Path:
    if locator.startswith("file://"):
        locator = locator[len("file://"):]
    return Path(locator)


class LocalFileDocumentAnalyzer(DocumentAnalyzer):
    """
    Reads UTF-8 text documents from the local filesystem.

    Binary files are refused. Confidence is the share of printable
    characters, so garbled text scores low. Key: value lines are reported
    as form fields.
    """

    async def analyze(self, locator: str) -> DocumentAnalysis:
        path = _local_path(locator)
        text = await asyncio.to_thread(self._read, path)
        return DocumentAnalysis(text=text, confidence=self._confidence(text))

    async def analyze_structured(self, locator: str) -> StructuredDocumentAnalysis:
        basic = await self.analyze(locator)
        return StructuredDocumentAnalysis(
            text=basic.text,
            confidence=basic.confidence,
            form_fields=self._form_fields(basic.text),
            classified_type=self.classifier.classify_text(basic.text),
        )

    def _read(self, path: Path) -> str:
        if not path.exists():
            raise DocumentAnalysisError(f"Document not found at path: {path}")
        try:
            data = path.read_bytes()
        except OSError as e:
            raise DocumentAnalysisError(f"Could not read document {path}: {e}") from e
        if b"\x00" in data:
            raise DocumentAnalysisError(
                f"Document {path} is binary; use the tesseract provider for scans and PDFs"
            )
        try:
            text = data.decode("utf-8").strip()
        except UnicodeDecodeError:
            raise DocumentAnalysisError(f"Document {path} is binary or not UTF-8 text") from None
        if not text:
            raise DocumentAnalysisError(f"Document {path} contains no text")
        return text

    @staticmethod
    def _confidence(text: str) -> float:
        if not text:
            return 0.0
        printable = sum(1 for ch in text if ch in string.printable or ch.isalpha())
        return round(printable / len(text), 4)

    @staticmethod
    def _form_fields(text: str) -> Dict[str, str]:
        fields = {}
        for line in text.splitlines():
            key, sep, value = line.partition(":")
            if sep and key.strip() and value.strip() and len(key) <= 40:
                fields[key.strip()] = value.strip()
        return fields


IMAGE_SUFFIXES = frozenset({".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".gif"})
PDF_SUFFIX = ".pdf"


class TesseractDocumentAnalyzer(LocalFileDocumentAnalyzer):
    """
    OCR for scanned images and PDFs using Tesseract.

    Images go through pytesseract and confidence is Tesseract's mean word
    confidence. PDFs use their embedded text layer via pdfplumber; pages
    without one are rendered and OCR'd. Other files are read as text.
    """

    def __init__(
        self,
        classifier: Optional[DocumentClassifier] = None,
        language: str = "eng",
        tesseract_cmd: Optional[str] = None,
    ):
        super().__init__(classifier)
        try:
            import pdfplumber
            import pytesseract
            from PIL import Image
        except ImportError:
            raise ImportError(
                "pytesseract, Pillow and pdfplumber packages required for the tesseract provider. "
                "Install with: pip install 'claims-adjudication[ocr]'"
            )

        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.pytesseract = pytesseract
        self.pdfplumber = pdfplumber
        self.image = Image
        self.language = language

    async def analyze(self, locator: str) -> DocumentAnalysis:
        path = _local_path(locator)
        suffix = path.suffix.lower()
        if suffix in IMAGE_SUFFIXES:
            reader = self._read_image
        elif suffix == PDF_SUFFIX:
            reader = self._read_pdf
        else:
            return await super().analyze(locator)

        if not path.exists():
            raise DocumentAnalysisError(f"Document not found at path: {path}")
        try:
            text, confidence = await asyncio.to_thread(reader, path)
        except Exception as e:
            raise DocumentAnalysisError(f"OCR failed for {path}: {e}") from e

        if not text:
            raise DocumentAnalysisError(f"Document {path} contains no text")
        logger.debug(f"OCR read {len(text)} characters from {path} (confidence {confidence:.2f})")
        return DocumentAnalysis(text=text, confidence=confidence)

    def _read_image(self, path: Path) -> Tuple[str, float]:
        with self.image.open(path) as image:
            return self._ocr(image)

    def _read_pdf(self, path: Path) -> Tuple[str, float]:
        pages: List[str] = []
        confidences: List[float] = []
        with self.pdfplumber.open(path) as pdf:
            for page in pdf.pages:
                text = (page.extract_text() or "").strip()
                if text:
                    pages.append(text)
                    confidences.append(1.0)
                    continue
                # Scanned page
                text, confidence = self._ocr(page.to_image(resolution=300).original)
                if text:
                    pages.append(text)
                    confidences.append(confidence)

        if not pages:
            return "", 0.0
        return "\n\n".join(pages), round(sum(confidences) / len(confidences), 4)

    def _ocr(self, image) -> Tuple[str, float]:
        """Words grouped back into lines, plus mean word confidence in [0, 1]."""
        data = self.pytesseract.image_to_data(
            image, lang=self.language, output_type=self.pytesseract.Output.DICT
        )
        lines: Dict[Tuple[int, int, int], List[str]] = {}
        confidences: List[float] = []
        for i, word in enumerate(data["text"]):
            conf = float(data["conf"][i])
            # -1 marks layout boxes that carry no word
            if conf < 0 or not word.strip():
                continue
            key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
            lines.setdefault(key, []).append(word.strip())
            confidences.append(conf)

        if not confidences:
            return "", 0.0
        text = "\n".join(" ".join(words) for words in lines.values())
        confidence = sum(confidences) / len(confidences) / 100
        return text, round(min(max(confidence, 0.0), 1.0), 4)


def create_document_analyzer(settings: Any = None) -> DocumentAnalyzer:
    """Factory function to create the configured document analyzer."""
    provider = getattr(settings, "document_analysis_provider", "local").lower()
    if provider == "local":
        return LocalFileDocumentAnalyzer()
    if provider == "tesseract":
        return TesseractDocumentAnalyzer(
            language=getattr(settings, "ocr_language", "eng"),
            tesseract_cmd=getattr(settings, "tesseract_cmd", None),
        )
    raise ValueError(f"Unsupported document analysis provider: {provider}")
