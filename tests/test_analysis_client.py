"""Tests for the Azure OpenAI analysis client, using a mocked HTTP transport."""

import json

import httpx
import pytest

from check_guardian.config import Settings
from check_guardian.exceptions import AnalysisError
from check_guardian.services.analysis_client import AzureOpenAIAnalysisClient, document_content_parts
from check_guardian.services.check_comparator import CheckComparator

SETTINGS = Settings(
    azure_openai_endpoint="https://example-openai.openai.azure.com/",
    azure_openai_api_key="test-key",
    azure_openai_deployment_name="check-vision",
    azure_openai_api_version="2024-12-01-preview",
    analysis_timeout_seconds=5,
)


def _completion(content) -> dict:
    return {"choices": [{"index": 0, "message": {"role": "assistant", "content": content}}]}


def _client(handler, settings=SETTINGS) -> AzureOpenAIAnalysisClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AzureOpenAIAnalysisClient(settings, http_client=http_client)


class TestAzureOpenAIAnalysisClient:
    def setup_method(self):
        self.requests = []

    @pytest.mark.asyncio
    async def test_returns_message_content(self, make_analysis, pdf_document, image_document, bank_metadata, comparison_metadata):
        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return httpx.Response(200, json=_completion(make_analysis(88)))

        text = await _client(handler).compare(pdf_document, image_document, bank_metadata, comparison_metadata)

        assert json.loads(text)["score"] == 88
        request = self.requests[0]
        assert request.url.path == "/openai/deployments/check-vision/chat/completions"
        assert request.url.params["api-version"] == "2024-12-01-preview"
        assert request.headers["api-key"] == "test-key"

        body = json.loads(request.content)
        assert body["response_format"] == {"type": "json_object"}
        assert body["messages"][0]["role"] == "system"
        parts = body["messages"][1]["content"]
        assert "Emirates NBD" in parts[0]["text"]
        assert any(p["type"] == "image_url" and p["image_url"]["url"].startswith("data:image/png;base64,") for p in parts)

    @pytest.mark.asyncio
    async def test_http_error_surfaces_as_analysis_error(self, pdf_document, bank_metadata, comparison_metadata):
        client = _client(lambda request: httpx.Response(429, json={"error": {"code": "429"}}))
        with pytest.raises(AnalysisError) as exc_info:
            await CheckComparator(client).compare(pdf_document, pdf_document, bank_metadata, comparison_metadata)
        assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_timeout_surfaces_as_analysis_error(self, pdf_document, bank_metadata, comparison_metadata):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(AnalysisError, match="timed out"):
            await CheckComparator(_client(handler)).compare(pdf_document, pdf_document, bank_metadata, comparison_metadata)

    @pytest.mark.asyncio
    async def test_prose_reply_is_analysis_error(self, pdf_document, bank_metadata, comparison_metadata):
        client = _client(lambda request: httpx.Response(200, json=_completion("These checks look similar.")))
        with pytest.raises(AnalysisError) as exc_info:
            await CheckComparator(client).compare(pdf_document, pdf_document, bank_metadata, comparison_metadata)
        assert exc_info.value.details["cause"] == "MALFORMED_RESPONSE"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"choices": []},
            {"unexpected": True},
            _completion(None),
            _completion(""),
            _completion([{"type": "text", "text": '{"score": 5}'}]),
            _completion({"score": 5}),
        ],
    )
    async def test_unexpected_payload(self, payload, pdf_document, bank_metadata, comparison_metadata):
        client = _client(lambda request: httpx.Response(200, json=payload))
        with pytest.raises(AnalysisError):
            await client.compare(pdf_document, pdf_document, bank_metadata, comparison_metadata)

    @pytest.mark.asyncio
    async def test_requires_configuration(self, pdf_document, bank_metadata, comparison_metadata):
        client = _client(lambda request: httpx.Response(200), settings=Settings(azure_openai_endpoint="", azure_openai_api_key=""))
        with pytest.raises(AnalysisError, match="configured"):
            await client.compare(pdf_document, pdf_document, bank_metadata, comparison_metadata)


class TestDocumentContentParts:
    def test_pdf_sent_as_text(self, pdf_document):
        parts = document_content_parts("Template check", pdf_document)
        assert len(parts) == 1
        assert parts[0]["type"] == "text"
        assert "(PDF)" in parts[0]["text"]

    def test_undecodable_document_noted(self):
        parts = document_content_parts("Check to verify", "data:image/png;base64,@@@")
        assert parts == [{"type": "text", "text": "Check to verify: document could not be decoded."}]

    def test_unknown_format_noted(self, to_data_uri):
        parts = document_content_parts("Check to verify", to_data_uri(b"plain text", "text/plain"))
        assert "unsupported" in parts[0]["text"]
