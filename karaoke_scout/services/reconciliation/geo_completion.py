"""Second-pass completion of missing location fields.

Only geo-incomplete records are sent back to the model, a few per call.
Returned values go into missing slots only; a present value is never
overwritten.  Coordinates of ``(0, 0)`` or out of range count as missing.

The model's per-item confidence gates the merge:

* below ``skip_threshold`` the record is ``skipped`` and left untouched
* below ``auto_apply_threshold`` the values are attached as an unapplied
  suggestion and the record is a ``conflict``
* otherwise (or when the model gave no confidence) the values are
  applied and the record is ``geo_fixed``
"""

from __future__ import annotations

from typing import Any

import structlog

from karaoke_scout.models.records import RecordStatus, ShowRecord, Suggestion
from karaoke_scout.models.targets import PromptKind
from karaoke_scout.services import prompts
from karaoke_scout.services.extraction_engine import StructuredExtractionEngine
from karaoke_scout.services.payload_decoder import GeoCompletionItem, decode_geo_completion
from karaoke_scout.services.reconciliation.status import WorkingShow
from karaoke_scout.utils.errors import ValidationFailureError
from karaoke_scout.utils.geo import has_usable_coordinates
from karaoke_scout.utils.logging import get_logger

GEO_COMPLETE_FIELDS: tuple[str, ...] = ("venue", "city", "state", "zip", "lat", "lng")
COMPLETABLE_FIELDS: tuple[str, ...] = ("address", "city", "state", "zip", "lat", "lng")
_CONTEXT_FIELDS: tuple[str, ...] = ("venue", "address", "city", "state", "zip", "dj_name", "venue_website")


def missing_geo_fields(record: ShowRecord) -> list[str]:
    """Completable location fields that are absent; lat/lng go together."""
    missing = [
        name
        for name in ("address", "city", "state", "zip")
        if getattr(record, name) in (None, "")
    ]
    if not has_usable_coordinates(record.lat, record.lng):
        missing.extend(("lat", "lng"))
    return missing


def is_geo_complete(record: ShowRecord) -> bool:
    """True when venue, city, state, zip and usable coordinates are all present."""
    if any(getattr(record, name) in (None, "") for name in ("venue", "city", "state", "zip")):
        return False
    return has_usable_coordinates(record.lat, record.lng)


class GeoCompleter:
    """Runs the geo-completion pass over a list of working shows."""

    def __init__(
        self,
        engine: StructuredExtractionEngine,
        batch_size: int = 5,
        auto_apply_threshold: float = 0.9,
        skip_threshold: float = 0.4,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._engine = engine
        self._batch_size = batch_size
        self._auto_apply = auto_apply_threshold
        self._skip = skip_threshold
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def complete(self, shows: list[WorkingShow]) -> int:
        """Complete incomplete *shows* in place.  Returns the number of calls made."""
        pending = [
            show for show in shows if not show.skipped and not is_geo_complete(show.record)
        ]
        pending = [show for show in pending if missing_geo_fields(show.record) and show.get("venue")]
        calls = 0
        for start in range(0, len(pending), self._batch_size):
            batch = pending[start : start + self._batch_size]
            calls += 1
            await self._complete_batch(batch, start // self._batch_size)
        return calls

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _complete_batch(self, batch: list[WorkingShow], batch_no: int) -> None:
        items: list[dict[str, Any]] = []
        for i, show in enumerate(batch):
            item: dict[str, Any] = {"index": i}
            for name in _CONTEXT_FIELDS:
                value = show.get(name)
                if value is not None:
                    item[name] = value
            item["missing"] = missing_geo_fields(show.record)
            items.append(item)

        self._logger.info("geo_completion_batch", batch=batch_no, size=len(batch))
        outcome = await self._engine.run_prompt(
            PromptKind.GEO_COMPLETION, prompts.geo_completion_prompt(items), max_tokens=2000
        )
        if not outcome.ok:
            self._logger.warning(
                "geo_completion_failed",
                batch=batch_no,
                error_kind=outcome.error_kind.value if outcome.error_kind else None,
                error=outcome.error_message,
            )
            return
        try:
            decoded = decode_geo_completion(outcome.payload)
        except ValidationFailureError as exc:
            self._logger.warning("geo_completion_rejected", batch=batch_no, error=exc.message)
            return

        seen: set[int] = set()
        for item in decoded:
            if not 0 <= item.index < len(batch) or item.index in seen:
                continue
            seen.add(item.index)
            self.merge(batch[item.index], item)

    def merge(self, show: WorkingShow, item: GeoCompletionItem) -> None:
        """Merge one completion item into *show* under the confidence gate."""
        missing = set(missing_geo_fields(show.record))
        proposal = {
            name: value
            for name, value in item.fields.items()
            if name in missing and name in COMPLETABLE_FIELDS and value not in (None, "")
        }
        if "lat" in proposal or "lng" in proposal:
            if not has_usable_coordinates(proposal.get("lat"), proposal.get("lng")):
                proposal.pop("lat", None)
                proposal.pop("lng", None)
        if not proposal:
            return

        confidence = item.confidence
        if confidence is not None and confidence < self._skip:
            show.suggestions.append(
                Suggestion(
                    source="geo_completion",
                    fields=proposal,
                    confidence=confidence,
                    reason="confidence below skip floor",
                )
            )
            show.flag(RecordStatus.SKIPPED, f"geo completion confidence {confidence:.2f}")
            return
        if confidence is not None and confidence < self._auto_apply:
            show.suggestions.append(
                Suggestion(
                    source="geo_completion",
                    fields=proposal,
                    confidence=confidence,
                    reason="confidence below auto-apply threshold",
                )
            )
            show.flag(RecordStatus.CONFLICT, f"geo completion needs review ({confidence:.2f})")
            return

        show.suggestions.append(
            Suggestion(source="geo_completion", fields=proposal, confidence=confidence, applied=True)
        )
        show.update(**proposal)
        show.flag(RecordStatus.GEO_FIXED, "completed " + ", ".join(sorted(proposal)))
        self._logger.debug("geo_completion_applied", venue=show.get("venue"), fields=sorted(proposal))
