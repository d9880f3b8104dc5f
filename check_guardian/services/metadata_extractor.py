"""
Document Metadata Extractor.
Reads structural facts (size, page dimensions, page count, authoring
fields) from check documents. PDFs are parsed with pypdf, scanned
images with OpenCV. Extraction never fails: unreadable input yields
sentinel metadata.
"""

import io
import logging

import cv2
from pypdf import PdfReader

from ..exceptions import DecodeError
from ..models.schemas import DocumentMetadata
from ..utils.document_utils import bytes_to_cv2, decode_payload, detect_mime

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"


def unknown_metadata() -> DocumentMetadata:
    return DocumentMetadata(file_size=UNKNOWN, dimensions=UNKNOWN, page_count=0)


def _round_half_up(value: float) -> int:
    return int(float(value) + 0.5)


class MetadataExtractor:
    """Derives DocumentMetadata from a raw, base64 or data-URI payload."""

    def extract(self, payload: bytes | str) -> DocumentMetadata:
        try:
            data = decode_payload(payload)
            if detect_mime(data) == "application/pdf":
                return self._from_pdf(data)
            return self._from_image(data)
        except DecodeError as e:
            logger.warning(f"Document metadata unavailable: {e.message} {e.details}")
            return unknown_metadata()

    def _from_pdf(self, data: bytes) -> DocumentMetadata:
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = reader.pages
            page_count = len(pages)
            box = pages[0].mediabox
            width, height = float(box.width), float(box.height)
        except Exception as e:
            raise DecodeError("PDF structure could not be parsed", {"reason": str(e)}) from e

        creator, producer, created = self._pdf_info(reader)
        return DocumentMetadata(
            file_size=self._file_size(data),
            dimensions=f"{_round_half_up(width)}x{_round_half_up(height)}",
            page_count=page_count,
            creator=creator,
            producer=producer,
            creation_date=created,
        )

    def _pdf_info(self, reader: PdfReader):
        """Read optional authoring fields; any unreadable one is left out."""
        try:
            info = reader.metadata
        except Exception as e:
            logger.debug(f"PDF info dictionary unreadable: {e}")
            return None, None, None
        if info is None:
            return None, None, None

        creator = producer = created = None
        try:
            creator = str(info.creator) if info.creator else None
            producer = str(info.producer) if info.producer else None
        except Exception as e:
            logger.debug(f"PDF creator/producer unreadable: {e}")
        try:
            created = info.creation_date
        except Exception as e:
            logger.debug(f"PDF creation date unreadable: {e}")
        return creator, producer, created

    def _from_image(self, data: bytes) -> DocumentMetadata:
        try:
            img = bytes_to_cv2(data) if data else None
        except cv2.error as e:
            raise DecodeError("Image could not be decoded", {"reason": str(e)}) from e
        if img is None:
            raise DecodeError("Unsupported or corrupt document", {"size_bytes": len(data)})

        h, w = img.shape[:2]
        return DocumentMetadata(
            file_size=self._file_size(data),
            dimensions=f"{w}x{h}",
            page_count=1,
        )

    @staticmethod
    def _file_size(data: bytes) -> str:
        return f"{len(data) / 1024:.2f} KB"
