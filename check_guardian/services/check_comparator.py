"""
Check Comparator.
Runs one template/candidate comparison through the analysis client
and sanitizes the response into a typed AnalysisResult.
"""

import asyncio
import logging

import httpx

from ..exceptions import AnalysisError, MalformedResponse
from ..models.schemas import AnalysisResult, BankTemplateMetadata, ComparisonMetadata
from .analysis_client import AnalysisClient
from .response_sanitizer import parse_analysis_response

logger = logging.getLogger(__name__)


class CheckComparator:
    """
    Compares a candidate check against one template.

    The analysis call is a single opaque operation: no retry, no
    persistence. Every failure surfaces as AnalysisError with the
    underlying cause chained.
    """

    def __init__(self, client: AnalysisClient):
        self.client = client

    async def compare(
        self,
        template_document: str,
        candidate_document: str,
        bank_metadata: BankTemplateMetadata,
        comparison_metadata: ComparisonMetadata,
    ) -> AnalysisResult:
        try:
            raw_text = await self.client.compare(
                template_document, candidate_document, bank_metadata, comparison_metadata
            )
        except AnalysisError:
            raise
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise AnalysisError(
                f"Analysis call timed out for bank '{bank_metadata.bank_name}'",
                {"cause": repr(e)},
            ) from e
        except httpx.HTTPError as e:
            raise AnalysisError(
                f"Analysis call failed for bank '{bank_metadata.bank_name}': {e}",
                {"cause": repr(e)},
            ) from e
        except Exception as e:
            raise AnalysisError(
                f"Analysis client error for bank '{bank_metadata.bank_name}': {e!r}",
                {"cause": repr(e)},
            ) from e

        try:
            result = parse_analysis_response(raw_text)
        except MalformedResponse as e:
            raise AnalysisError(
                f"Analysis response for bank '{bank_metadata.bank_name}' is unusable: {e.message}",
                {"cause": e.code, **e.details},
            ) from e

        logger.info(f"Compared against '{bank_metadata.bank_name}': score={result.score:.0f}")
        return result
