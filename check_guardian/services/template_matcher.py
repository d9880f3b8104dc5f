"""
Template Matcher.
Chooses which stored bank template a candidate check should be
verified against: either the one the user named, or the template the
analysis model scores highest.
"""

import asyncio
import logging
from dataclasses import dataclass

from ..exceptions import CheckGuardianError
from ..models.schemas import AnalysisResult, BankTemplate, ComparisonMetadata
from .check_comparator import CheckComparator
from .metadata_extractor import MetadataExtractor

logger = logging.getLogger(__name__)


@dataclass
class TemplateMatch:
    """Selected template, plus the comparison that selected it (if any)."""
    template: BankTemplate
    analysis: AnalysisResult | None = None
    comparison_metadata: ComparisonMetadata | None = None

    @property
    def score(self) -> float | None:
        return self.analysis.score if self.analysis else None


class TemplateMatcher:
    """
    Template selection policy.

    With an explicit bank name, the first template carrying that name is
    returned without any comparison. Otherwise every template is compared
    concurrently and the strictly highest score wins; ties go to the
    template stored first. Failed comparisons are excluded from the fold.
    """

    def __init__(self, comparator: CheckComparator, metadata_extractor: MetadataExtractor | None = None):
        self.comparator = comparator
        self.metadata = metadata_extractor or MetadataExtractor()

    async def find_best_match(
        self,
        candidate_document: str,
        templates: list[BankTemplate],
        bank_override: str | None = None,
    ) -> TemplateMatch | None:
        if not templates:
            return None

        if bank_override:
            for template in templates:
                if template.name == bank_override:
                    return TemplateMatch(template=template)
            logger.warning(f"No template named '{bank_override}'")
            return None

        outcomes = await asyncio.gather(
            *(self._score_template(template, candidate_document) for template in templates)
        )

        best: TemplateMatch | None = None
        for match in outcomes:
            if match is None:
                continue
            if best is None or match.analysis.score > best.analysis.score:
                best = match

        if best is None:
            logger.warning(f"All {len(templates)} template comparison(s) failed")
        else:
            logger.info(f"Best template: '{best.template.name}' (score={best.score:.0f})")
        return best

    async def _score_template(self, template: BankTemplate, candidate_document: str) -> TemplateMatch | None:
        try:
            comparison_metadata = await self.comparison_metadata(template.sample_document, candidate_document)
            analysis = await self.comparator.compare(
                template.sample_document,
                candidate_document,
                template.metadata,
                comparison_metadata,
            )
        except CheckGuardianError as e:
            logger.error(f"Comparison with template '{template.name}' failed: {e}")
            return None
        return TemplateMatch(template=template, analysis=analysis, comparison_metadata=comparison_metadata)

    async def comparison_metadata(self, template_document: str, candidate_document: str) -> ComparisonMetadata:
        """Extract fresh metadata for both documents off the event loop."""
        template_meta, candidate_meta = await asyncio.gather(
            asyncio.to_thread(self.metadata.extract, template_document),
            asyncio.to_thread(self.metadata.extract, candidate_document),
        )
        return ComparisonMetadata(template_metadata=template_meta, verified_metadata=candidate_meta)
