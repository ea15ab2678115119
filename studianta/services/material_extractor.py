"""
Studianta - Material Text Extractor
Turns the selected study materials into one labeled text blob for the examiner.
"""
import asyncio
import base64
import binascii
import io
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional
from urllib.parse import urlparse

import httpx
from pypdf import PdfReader
from pypdf.errors import FileNotDecryptedError, PdfReadError

from studianta.core.config import settings
from studianta.core.errors import NoValidSourceMaterial
from studianta.models.subject import StudyMaterial

logger = logging.getLogger(__name__)

PDF_DATA_PREFIX = "data:application/pdf;base64,"
STORAGE_OBJECT_PATH = "/storage/v1/object/"


class DocumentExtractionError(Exception):
    """A single document could not be turned into text."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


def is_valid_pdf_reference(ref: Optional[str]) -> bool:
    """
    Check whether a reference can be handed to the document extractor.

    Accepts PDF data URIs and http(s) URLs that look like a PDF or a
    storage object.
    """
    if not ref:
        return False

    if ref.startswith("data:"):
        header = ref.split(",", 1)[0].lower()
        return "pdf" in header

    parsed = urlparse(ref)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return False

    lowered = ref.lower()
    return "pdf" in lowered or STORAGE_OBJECT_PATH in lowered


def _is_pdf_material(material: StudyMaterial) -> bool:
    return material.type == "PDF" or material.name.lower().endswith(".pdf")


def resolve_material_references(materials: Iterable[StudyMaterial]) -> list[str]:
    """
    Pick one extractable reference per material.

    A valid `file_url` wins; otherwise PDF-typed materials fall back to their
    inline base64 `content`. Materials with neither are logged and skipped.
    """
    references = []

    for material in materials:
        if material.file_url and is_valid_pdf_reference(material.file_url):
            references.append(material.file_url)
            continue

        if material.content and _is_pdf_material(material):
            payload = material.content.strip()
            if "," in payload:
                payload = payload.split(",", 1)[1]
            references.append(f"{PDF_DATA_PREFIX}{payload}")
            continue

        logger.warning(
            "Material %s (%s) cannot be processed: type=%s has_file_url=%s has_content=%s",
            material.id, material.name, material.type,
            bool(material.file_url), bool(material.content),
        )

    return references


class DocumentExtractor:
    """Fetches a PDF (URL or data URI) and extracts its text with pypdf."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout or settings.DOCUMENT_FETCH_TIMEOUT_SECONDS
        self.transport = transport

    async def extract_text(self, ref: str) -> str:
        """
        Extract the plain text of one document.

        Raises:
            DocumentExtractionError: with a reason fit to show in the batch placeholder
        """
        data = await self._load(ref)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read_pdf, data)

    async def _load(self, ref: str) -> bytes:
        if ref.startswith("data:"):
            try:
                return base64.b64decode(ref.split(",", 1)[1])
            except (IndexError, binascii.Error, ValueError):
                raise DocumentExtractionError("El contenido del material no es un PDF válido.")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                response = await client.get(ref)
                response.raise_for_status()
                return response.content
        except httpx.HTTPStatusError as e:
            raise DocumentExtractionError(
                f"Error al descargar PDF: {e.response.status_code} {e.response.reason_phrase}"
            )
        except httpx.HTTPError:
            raise DocumentExtractionError(
                "No se pudo descargar el PDF. Verifica tu conexión a internet."
            )

    @staticmethod
    def _read_pdf(data: bytes) -> str:
        try:
            reader = PdfReader(io.BytesIO(data))
            if reader.is_encrypted and not reader.decrypt(""):
                raise FileNotDecryptedError("password required")

            text_parts = []
            for page in reader.pages:
                text = page.extract_text()
                if text:
                    text_parts.append(text)
        except FileNotDecryptedError:
            raise DocumentExtractionError("El PDF está protegido con contraseña y no se puede leer.")
        except PdfReadError:
            raise DocumentExtractionError("El archivo PDF está corrupto o no es válido.")
        except Exception as e:
            raise DocumentExtractionError(f"Error al extraer texto del PDF: {e}")

        full_text = "\n".join(text_parts).strip()
        if not full_text:
            raise DocumentExtractionError("El PDF no contiene texto extraíble.")
        return full_text


@dataclass
class ExtractionFailure:
    """A document that ended up as a placeholder."""
    number: int
    reason: str


@dataclass
class ExtractionBatch:
    """Combined result of extracting several documents."""
    text: str
    segments: list[str] = field(default_factory=list)
    failures: list[ExtractionFailure] = field(default_factory=list)

    @property
    def has_content(self) -> bool:
        return len(self.failures) < len(self.segments)


class MaterialTextExtractor:
    """
    Extracts every reference concurrently and keeps going when one fails.

    Output keeps document order:
        --- Material 1 ---
        <text>

        --- Material 2 (Error: <reason>) ---
    """

    def __init__(
        self,
        document_extractor: Optional[DocumentExtractor] = None,
        max_chars: Optional[int] = None,
    ):
        self.document_extractor = document_extractor or DocumentExtractor()
        self.max_chars = max_chars or settings.EXAM_MAX_MATERIAL_CHARS

    async def extract_many(self, refs: list[str]) -> ExtractionBatch:
        """
        Raises:
            NoValidSourceMaterial: no references, or every document failed
        """
        if not refs:
            raise NoValidSourceMaterial(detail="no extractable references")

        outcomes = await asyncio.gather(
            *(self.document_extractor.extract_text(ref) for ref in refs),
            return_exceptions=True,
        )

        segments = []
        failures = []
        for number, outcome in enumerate(outcomes, start=1):
            if isinstance(outcome, Exception):
                reason = (
                    outcome.reason if isinstance(outcome, DocumentExtractionError)
                    else f"Error al extraer texto del PDF: {outcome}"
                )
                logger.warning("Extraction of material %d failed: %r", number, outcome)
                failures.append(ExtractionFailure(number=number, reason=reason))
                segments.append(f"--- Material {number} (Error: {reason}) ---")
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                segments.append(f"--- Material {number} ---\n{outcome}")

        text = "\n\n".join(segments)
        if len(text) > self.max_chars:
            logger.info("Material text truncated from %d to %d chars", len(text), self.max_chars)
            text = text[:self.max_chars]

        batch = ExtractionBatch(text=text, segments=segments, failures=failures)
        if not batch.has_content:
            raise NoValidSourceMaterial(
                detail="; ".join(f"#{f.number}: {f.reason}" for f in failures)
            )

        logger.info(
            "Extracted %d of %d materials (%d chars)",
            len(segments) - len(failures), len(segments), len(text),
        )
        return batch
