"""
Check Repository: persistence for bank templates and verification history.

Each collection lives as one JSON array under a fixed key of a KeyValueStore.
Every operation is a whole-collection read-modify-write; there is no
isolation between concurrent writers, so two writers racing on the same
key can lose an update. The service runs one writer per store.

History has a retention rule: before each append, entries older than one
calendar month are dropped.
"""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timezone
from typing import Callable

from pydantic import TypeAdapter, ValidationError

from ..exceptions import StorageError
from ..models.schemas import BankTemplate, VerificationResult
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

TEMPLATES_KEY = "check-guardian-banks"
HISTORY_KEY = "check-guardian-history"

_templates_adapter = TypeAdapter(list[BankTemplate])
_history_adapter = TypeAdapter(list[VerificationResult])


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def subtract_months(moment: datetime, months: int = 1) -> datetime:
    """Calendar-month subtraction; the day is clamped to the target month.

    Mar 31 minus one month is Feb 28 (Feb 29 in leap years), not Mar 3.
    """
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month0 = divmod(month_index, 12)
    month = month0 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _as_utc(moment: datetime) -> datetime:
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


class CheckRepository:
    """Templates and verification history over an injected key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        templates_key: str = TEMPLATES_KEY,
        history_key: str = HISTORY_KEY,
        retention_months: int = 1,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.templates_key = templates_key
        self.history_key = history_key
        self.retention_months = retention_months
        self.clock = clock

    # ─── Serialization ─────────────────────────────────────────────

    def _load(self, key: str, adapter: TypeAdapter) -> list:
        raw = self.store.get(key)
        if not raw:
            return []
        try:
            return adapter.validate_json(raw)
        except ValidationError as e:
            raise StorageError(
                f"Stored collection '{key}' is corrupt",
                {"key": key, "errors": e.error_count()},
            ) from e

    def _save(self, key: str, adapter: TypeAdapter, items: list) -> None:
        self.store.set(key, adapter.dump_json(items, by_alias=True).decode("utf-8"))

    # ─── Templates ─────────────────────────────────────────────────

    def list_templates(self) -> list[BankTemplate]:
        return self._load(self.templates_key, _templates_adapter)

    def get_template(self, template_id: str) -> BankTemplate | None:
        return next((t for t in self.list_templates() if t.id == template_id), None)

    def add_template(self, template: BankTemplate) -> BankTemplate:
        """Append a template; names are not required to be unique."""
        templates = self.list_templates()
        templates.append(template)
        self._save(self.templates_key, _templates_adapter, templates)
        logger.info(f"Template saved: '{template.name}' ({template.id})")
        return template

    def rename_template(self, template_id: str, new_name: str) -> BankTemplate | None:
        templates = self.list_templates()
        renamed: BankTemplate | None = None
        for i, template in enumerate(templates):
            if template.id == template_id:
                renamed = template.model_copy(update={"name": new_name})
                templates[i] = renamed
        if renamed is None:
            return None
        self._save(self.templates_key, _templates_adapter, templates)
        logger.info(f"Template {template_id} renamed to '{new_name}'")
        return renamed

    def delete_template(self, template_id: str) -> bool:
        templates = self.list_templates()
        kept = [t for t in templates if t.id != template_id]
        if len(kept) == len(templates):
            return False
        self._save(self.templates_key, _templates_adapter, kept)
        logger.info(f"Template {template_id} deleted")
        return True

    # ─── History ───────────────────────────────────────────────────

    def list_history(self) -> list[VerificationResult]:
        return self._load(self.history_key, _history_adapter)

    def append_history(self, result: VerificationResult, now: datetime | None = None) -> list[VerificationResult]:
        """Drop entries older than the retention window, then append `result`."""
        cutoff = subtract_months(_as_utc(now or self.clock()), self.retention_months)
        history = self.list_history()
        kept = [entry for entry in history if _as_utc(entry.timestamp) > cutoff]
        if len(kept) < len(history):
            logger.info(f"Expired {len(history) - len(kept)} history entr(ies) older than {cutoff.isoformat()}")
        kept.append(result)
        self._save(self.history_key, _history_adapter, kept)
        return kept
