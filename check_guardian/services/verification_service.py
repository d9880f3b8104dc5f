"""
Check Verification Service — end-to-end flow.

Pipeline per document:
1. Select a template (explicit bank name, or best score across templates)
2. Compare the check against it (reusing the selection comparison when available)
3. Package a VerificationResult and append it to history

Documents in a batch run concurrently; a failure is reported against its
own document only.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass

from ..exceptions import CheckGuardianError, NoTemplateAvailable
from ..models.schemas import (
    BankTemplate,
    BankTemplateMetadata,
    VerificationMetadata,
    VerificationOutcome,
    VerificationResult,
)
from .check_comparator import CheckComparator
from .metadata_extractor import MetadataExtractor
from .repository import CheckRepository, utc_now
from .template_matcher import TemplateMatcher

logger = logging.getLogger(__name__)


@dataclass
class SubmittedDocument:
    """A candidate check awaiting verification."""
    file_name: str
    document: str  # data URI or base64


class VerificationService:
    def __init__(
        self,
        repository: CheckRepository,
        comparator: CheckComparator,
        metadata_extractor: MetadataExtractor | None = None,
    ):
        self.repository = repository
        self.comparator = comparator
        self.metadata = metadata_extractor or MetadataExtractor()
        self.matcher = TemplateMatcher(comparator, self.metadata)

    def register_template(self, name: str, document: str, check_format: str = "standard") -> BankTemplate:
        template = BankTemplate(
            id=uuid.uuid4().hex,
            name=name,
            sample_document=document,
            metadata=BankTemplateMetadata(bank_name=name, check_format=check_format, date_added=utc_now()),
        )
        return self.repository.add_template(template)

    async def verify_document(
        self,
        file_name: str,
        document: str,
        bank_name: str | None = None,
        sequence_number: int = 1,
    ) -> VerificationResult:
        """
        Verify one check and persist the result.

        Raises:
            NoTemplateAvailable: no templates, unknown bank name, or every comparison failed.
            AnalysisError: the comparison against the selected template failed.
        """
        templates = self.repository.list_templates()
        match = await self.matcher.find_best_match(document, templates, bank_name)
        if match is None:
            raise NoTemplateAvailable(
                "No matching bank template found",
                {"file_name": file_name, "bank_name": bank_name, "templates": len(templates)},
            )

        template = match.template
        analysis = match.analysis
        comparison_metadata = match.comparison_metadata
        if analysis is None or comparison_metadata is None:
            comparison_metadata = await self.matcher.comparison_metadata(template.sample_document, document)
            analysis = await self.comparator.compare(
                template.sample_document, document, template.metadata, comparison_metadata
            )

        result = VerificationResult(
            id=uuid.uuid4().hex,
            file_name=file_name,
            sequence_number=sequence_number,
            bank_name=template.name,
            check_document=document,
            template_document=template.sample_document,
            timestamp=utc_now(),
            score=analysis.score,
            metadata=VerificationMetadata(
                template=comparison_metadata.template_metadata,
                verified=comparison_metadata.verified_metadata,
            ),
            details=analysis.details(),
        )
        self.repository.append_history(result)
        logger.info(f"Check verified: {file_name} against '{template.name}', score={result.score:.0f}")
        return result

    async def verify_batch(
        self,
        documents: list[SubmittedDocument],
        bank_name: str | None = None,
        first_sequence_number: int = 1,
    ) -> list[VerificationOutcome]:
        """Verify documents concurrently with per-document failure isolation.

        Raises:
            NoTemplateAvailable: if no template is stored at all.
        """
        if not self.repository.list_templates():
            raise NoTemplateAvailable("Add at least one bank template before verifying checks")

        tasks = [
            self._verify_isolated(doc, bank_name, first_sequence_number + i)
            for i, doc in enumerate(documents)
        ]
        return list(await asyncio.gather(*tasks))

    async def _verify_isolated(
        self, doc: SubmittedDocument, bank_name: str | None, sequence_number: int
    ) -> VerificationOutcome:
        try:
            result = await self.verify_document(doc.file_name, doc.document, bank_name, sequence_number)
        except CheckGuardianError as e:
            logger.error(f"Verification failed for {doc.file_name}: [{e.code}] {e}")
            return VerificationOutcome(file_name=doc.file_name, status="error", error=str(e), error_code=e.code)
        return VerificationOutcome(file_name=doc.file_name, status="success", result=result)
