"""Pydantic models for the Check Guardian verification service.

Records are serialized with camelCase aliases so persisted JSON keeps one
stable shape; Python code uses the snake_case attribute names.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ─── Templates ──────────────────────────────────────────────────────


class BankTemplateMetadata(CamelModel):
    bank_name: str
    check_format: str = "standard"
    date_added: datetime


class BankTemplate(CamelModel):
    """A stored reference check plus bank metadata."""
    id: str
    name: str
    sample_document: str  # data URI or bare base64
    metadata: BankTemplateMetadata


# ─── Document metadata ──────────────────────────────────────────────


class DocumentMetadata(CamelModel):
    file_size: str
    dimensions: str
    page_count: int = Field(default=0, ge=0)
    creator: Optional[str] = None
    producer: Optional[str] = None
    creation_date: Optional[datetime] = None


class ComparisonMetadata(CamelModel):
    template_metadata: DocumentMetadata
    verified_metadata: DocumentMetadata


# ─── Analysis ───────────────────────────────────────────────────────


class FieldComparisonEntry(CamelModel):
    present: bool = False
    matches: bool = False
    comment: str


class AnalysisDetails(CamelModel):
    field_comparisons: dict[str, FieldComparisonEntry] = Field(default_factory=dict)
    layout_match: str
    security_features: str
    stamp_signature: str
    metadata_comparison: str
    overall_assessment: str
    missing_fields: list[str] = Field(default_factory=list)


class AnalysisResult(AnalysisDetails):
    """Sanitized outcome of one template/candidate comparison."""
    score: float = Field(ge=0, le=100)

    def details(self) -> AnalysisDetails:
        return AnalysisDetails.model_validate(self.model_dump(exclude={"score"}))


# ─── Verification ───────────────────────────────────────────────────


class VerificationMetadata(CamelModel):
    template: DocumentMetadata
    verified: DocumentMetadata


class VerificationResult(CamelModel):
    """One completed verification, appended to history and never mutated."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    file_name: str
    sequence_number: int
    bank_name: str
    check_document: str
    template_document: str
    timestamp: datetime
    score: float
    metadata: VerificationMetadata
    details: AnalysisDetails


class VerificationOutcome(CamelModel):
    """Per-document status within a batch submission."""
    file_name: str
    status: Literal["success", "error"]
    result: Optional[VerificationResult] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


# ─── API ────────────────────────────────────────────────────────────


class TemplateRename(CamelModel):
    name: str = Field(..., min_length=1)


class BatchVerificationResponse(CamelModel):
    processed: int
    succeeded: int
    failed: int
    outcomes: list[VerificationOutcome]


class HealthResponse(CamelModel):
    status: str
    service: str
    templates_loaded: int
