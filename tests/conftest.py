"""Shared fixtures: synthetic check documents and a scripted analysis client."""

import base64
import io
import json

import cv2
import numpy as np
import pytest
from pypdf import PdfWriter

from check_guardian.models.schemas import BankTemplateMetadata, ComparisonMetadata


def _create_pdf(width=612, height=792, pages=1, metadata=None) -> bytes:
    """Create a synthetic PDF check document."""
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=width, height=height)
    if metadata:
        writer.add_metadata(metadata)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def _create_check_image(width=600, height=280) -> bytes:
    """Create a synthetic check scan with a few text-like lines."""
    img = np.ones((height, width, 3), dtype=np.uint8) * 235
    for y in range(40, height - 40, 50):
        cv2.line(img, (30, y), (width - 60, y), (40, 40, 40), 2)
    _, buffer = cv2.imencode(".png", img)
    return buffer.tobytes()


def _data_uri(data: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def analysis_json(score=90, **overrides) -> str:
    payload = {
        "score": score,
        "fieldComparison": {
            "payee": {"present": True, "matches": True, "comment": "Payee line in the same place"},
            "amount": {"present": True, "matches": False, "comment": "Amount box shifted"},
        },
        "missingFields": [],
        "stampSignature": "Signature area present",
        "metadataComparison": "Same producer",
        "layoutMatch": "Layout matches",
        "securityFeatures": "Microprint visible",
        "overallAssessment": "Likely genuine",
    }
    payload.update(overrides)
    return json.dumps(payload, ensure_ascii=False)


class FakeAnalysisClient:
    """Returns a scripted response (or raises) per template bank name."""

    def __init__(self, responses=None, default=None):
        self.responses = responses or {}
        self.default = default if default is not None else analysis_json()
        self.calls = []

    async def compare(self, template_document, candidate_document, bank_metadata, comparison_metadata):
        self.calls.append(bank_metadata.bank_name)
        response = self.responses.get(bank_metadata.bank_name, self.default)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def pdf_bytes():
    return _create_pdf(
        metadata={
            "/Creator": "Check Designer",
            "/Producer": "Bank Print Services",
            "/CreationDate": "D:20240115103000+00'00'",
        }
    )


@pytest.fixture
def pdf_document(pdf_bytes):
    return _data_uri(pdf_bytes, "application/pdf")


@pytest.fixture
def image_bytes():
    return _create_check_image()


@pytest.fixture
def image_document(image_bytes):
    return _data_uri(image_bytes, "image/png")


@pytest.fixture
def bank_metadata():
    return BankTemplateMetadata(bank_name="Emirates NBD", check_format="standard", date_added="2024-01-01T00:00:00Z")


@pytest.fixture
def comparison_metadata():
    meta = {"fileSize": "1.00 KB", "dimensions": "612x792", "pageCount": 1}
    return ComparisonMetadata(template_metadata=meta, verified_metadata=meta)


@pytest.fixture
def make_client():
    return FakeAnalysisClient


@pytest.fixture
def make_analysis():
    return analysis_json


@pytest.fixture
def make_pdf():
    return _create_pdf


@pytest.fixture
def to_data_uri():
    return _data_uri
