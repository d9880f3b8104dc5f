"""
Check Guardian — FastAPI Application.
Register sample checks per bank, verify submitted checks against them
with an AI comparison, and browse the verification history.

Run locally:   uvicorn check_guardian.main:app --reload --port 8002
"""

import logging
from typing import Optional

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .exceptions import NoTemplateAvailable, StorageError
from .models.schemas import (
    BankTemplate,
    BatchVerificationResponse,
    HealthResponse,
    TemplateRename,
    VerificationResult,
)
from .services.analysis_client import AzureOpenAIAnalysisClient
from .services.check_comparator import CheckComparator
from .services.metadata_extractor import MetadataExtractor
from .services.repository import CheckRepository
from .services.storage import build_store
from .services.verification_service import SubmittedDocument, VerificationService
from .utils.document_utils import to_data_uri

logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)-8s | %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Check Guardian — Bank Check Verification",
    description=(
        "Stores sample checks per bank and verifies submitted checks against "
        "them using an AI image comparison, with a one-month verification history."
    ),
    version="1.0.0",
)

app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

ALLOWED_TYPES = {"image/png", "image/jpeg", "image/tiff", "image/bmp", "application/pdf"}

_service: VerificationService | None = None


def build_service() -> VerificationService:
    settings = get_settings()
    repository = CheckRepository(build_store(settings), settings.templates_key, settings.history_key)
    comparator = CheckComparator(AzureOpenAIAnalysisClient(settings))
    return VerificationService(repository, comparator, MetadataExtractor())


def get_service() -> VerificationService:
    global _service
    if _service is None:
        _service = build_service()
    return _service


def _validate_upload(file: UploadFile):
    if file.content_type and file.content_type not in ALLOWED_TYPES:
        raise HTTPException(400, f"Unsupported file type: {file.content_type}")


async def _read_document(file: UploadFile) -> str:
    content = await file.read()
    if not content:
        raise HTTPException(400, f"Empty file: {file.filename}")
    return to_data_uri(content, file.content_type if file.content_type in ALLOWED_TYPES else None)


@app.exception_handler(StorageError)
async def storage_error_handler(request, exc: StorageError):
    logger.error(f"Storage failure: {exc.message} {exc.details}")
    return JSONResponse(status_code=500, content={"detail": exc.message, "code": exc.code})


# ─── Templates ──────────────────────────────────────────────────────


@app.post("/api/v1/templates", response_model=BankTemplate, status_code=201)
async def create_template(
    name: str = Form(..., min_length=1),
    file: UploadFile = File(..., description="Sample check for this bank"),
    check_format: str = Form("standard"),
):
    """Register a sample check as the template for a bank."""
    _validate_upload(file)
    document = await _read_document(file)
    return get_service().register_template(name.strip(), document, check_format)


@app.get("/api/v1/templates", response_model=list[BankTemplate])
async def list_templates():
    return get_service().repository.list_templates()


@app.patch("/api/v1/templates/{template_id}", response_model=BankTemplate)
async def rename_template(template_id: str, body: TemplateRename):
    template = get_service().repository.rename_template(template_id, body.name.strip())
    if template is None:
        raise HTTPException(404, f"Template not found: {template_id}")
    return template


@app.delete("/api/v1/templates/{template_id}", status_code=204)
async def delete_template(template_id: str):
    if not get_service().repository.delete_template(template_id):
        raise HTTPException(404, f"Template not found: {template_id}")


# ─── Verification ───────────────────────────────────────────────────


@app.post("/api/v1/checks/verify", response_model=BatchVerificationResponse)
async def verify_checks(
    files: list[UploadFile] = File(..., description="Checks to verify"),
    bank_name: Optional[str] = Form(None, description="Template name; omit for automatic matching"),
):
    """
    Verify one or more checks. Each check is compared with the named
    template, or with every template when no bank is given. One check
    failing does not affect the others.
    """
    documents = []
    for file in files:
        _validate_upload(file)
        documents.append(SubmittedDocument(file_name=file.filename or "check", document=await _read_document(file)))

    try:
        outcomes = await get_service().verify_batch(documents, bank_name or None)
    except NoTemplateAvailable as e:
        raise HTTPException(409, e.message)

    succeeded = sum(1 for o in outcomes if o.status == "success")
    return BatchVerificationResponse(
        processed=len(outcomes),
        succeeded=succeeded,
        failed=len(outcomes) - succeeded,
        outcomes=outcomes,
    )


@app.get("/api/v1/history", response_model=list[VerificationResult])
async def verification_history():
    return get_service().repository.list_history()


@app.get("/api/v1/health", response_model=HealthResponse)
async def health():
    return HealthResponse(
        status="healthy",
        service="Check Guardian",
        templates_loaded=len(get_service().repository.list_templates()),
    )


@app.get("/")
async def root():
    return {
        "service": "Check Guardian — Bank Check Verification",
        "version": "1.0.0",
        "docs": "/docs",
        "endpoints": {
            "templates": "GET|POST /api/v1/templates",
            "template": "PATCH|DELETE /api/v1/templates/{id}",
            "verify": "POST /api/v1/checks/verify",
            "history": "GET /api/v1/history",
        },
    }
