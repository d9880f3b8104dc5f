"""
Analysis Client using Azure OpenAI chat completions.
Sends a template check and a candidate check, plus their metadata,
to a vision-capable deployment and returns the raw response text.
The text is untrusted; callers must run it through the response sanitizer.
"""

import io
import logging
from typing import Protocol

import httpx
from pypdf import PdfReader

from ..config import Settings, get_settings
from ..exceptions import AnalysisError, DecodeError
from ..models.schemas import BankTemplateMetadata, ComparisonMetadata
from ..utils.document_utils import decode_payload, detect_mime, to_data_uri

logger = logging.getLogger(__name__)

PDF_EXCERPT_CHARS = 4000

SYSTEM_PROMPT = """\
You are a bank check verification analyst. Compare a reference check
(the template issued by a bank) with a check submitted for verification.
Assess field presence and agreement, layout, security features, stamps
and signatures, and the supplied file metadata.

Return ONLY a JSON object with this structure, no surrounding text:
{
  "score": number from 0 to 100,
  "fieldComparison": {
    "field_name": {"present": true/false, "matches": true/false, "comment": "text"}
  },
  "missingFields": ["field1", "field2"],
  "stampSignature": "analysis text",
  "metadataComparison": "analysis text",
  "layoutMatch": "analysis text",
  "securityFeatures": "analysis text",
  "overallAssessment": "analysis text"
}
"""


class AnalysisClient(Protocol):
    """The external check comparison capability."""

    async def compare(
        self,
        template_document: str,
        candidate_document: str,
        bank_metadata: BankTemplateMetadata,
        comparison_metadata: ComparisonMetadata,
    ) -> str: ...


def pdf_text_excerpt(data: bytes, limit: int = PDF_EXCERPT_CHARS) -> str:
    """Extract text from the first PDF page, or an empty string."""
    try:
        reader = PdfReader(io.BytesIO(data))
        text = reader.pages[0].extract_text() or ""
    except Exception as e:
        logger.debug(f"PDF text extraction failed: {e}")
        return ""
    return " ".join(text.split())[:limit]


def document_content_parts(label: str, document: str) -> list[dict]:
    """Build chat content parts describing one document."""
    try:
        data = decode_payload(document)
    except DecodeError as e:
        logger.warning(f"{label} could not be decoded for analysis: {e.message}")
        return [{"type": "text", "text": f"{label}: document could not be decoded."}]

    mime = detect_mime(data)
    if mime and mime.startswith("image/"):
        return [
            {"type": "text", "text": f"{label} (image):"},
            {"type": "image_url", "image_url": {"url": to_data_uri(data, mime)}},
        ]

    if mime != "application/pdf":
        return [{"type": "text", "text": f"{label}: unsupported document format."}]
    excerpt = pdf_text_excerpt(data)
    return [{"type": "text", "text": f"{label} (PDF) first page text:\n{excerpt or '[no extractable text]'}"}]


class AzureOpenAIAnalysisClient:
    """Azure OpenAI chat-completions wrapper for check comparison."""

    def __init__(self, settings: Settings | None = None, http_client: httpx.AsyncClient | None = None):
        settings = settings or get_settings()
        self.endpoint = settings.azure_openai_endpoint.rstrip("/")
        self.api_key = settings.azure_openai_api_key
        self.deployment = settings.azure_openai_deployment_name
        self.api_version = settings.azure_openai_api_version
        self.timeout = settings.analysis_timeout_seconds
        self._http_client = http_client

    def build_messages(
        self,
        template_document: str,
        candidate_document: str,
        bank_metadata: BankTemplateMetadata,
        comparison_metadata: ComparisonMetadata,
    ) -> list[dict]:
        context = (
            f"Template bank metadata:\n{bank_metadata.model_dump_json(by_alias=True)}\n\n"
            "File metadata:\n"
            f"Template: {comparison_metadata.template_metadata.model_dump_json(by_alias=True, exclude_none=True)}\n"
            f"Verified: {comparison_metadata.verified_metadata.model_dump_json(by_alias=True, exclude_none=True)}"
        )
        content = [{"type": "text", "text": context}]
        content += document_content_parts("Template check", template_document)
        content += document_content_parts("Check to verify", candidate_document)
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": content},
        ]

    async def compare(
        self,
        template_document: str,
        candidate_document: str,
        bank_metadata: BankTemplateMetadata,
        comparison_metadata: ComparisonMetadata,
    ) -> str:
        """
        Ask the deployment to compare two checks.

        Returns:
            The raw message content produced by the model.
        """
        if not self.endpoint or not self.api_key:
            raise AnalysisError("Azure OpenAI endpoint and API key must be configured")

        url = (
            f"{self.endpoint}/openai/deployments/{self.deployment}"
            f"/chat/completions?api-version={self.api_version}"
        )
        headers = {"api-key": self.api_key, "Content-Type": "application/json"}
        body = {
            "messages": self.build_messages(
                template_document, candidate_document, bank_metadata, comparison_metadata
            ),
            "response_format": {"type": "json_object"},
            "temperature": 0,
        }

        if self._http_client is not None:
            response = await self._http_client.post(url, headers=headers, json=body, timeout=self.timeout)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(url, headers=headers, json=body, timeout=self.timeout)
        response.raise_for_status()

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise AnalysisError("Unexpected chat completion payload", {"reason": str(e)}) from e
        if content is not None and not isinstance(content, str):
            raise AnalysisError(
                "Unexpected chat completion payload",
                {"reason": f"message content is {type(content).__name__}, not text"},
            )
        if not content:
            raise AnalysisError("Analysis model returned empty content")

        logger.info(f"Analysis response received ({len(content)} chars) for bank '{bank_metadata.bank_name}'")
        return content
