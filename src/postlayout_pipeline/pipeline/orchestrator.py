from __future__ import annotations

import logging
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, Optional, Set

from pydantic import ValidationError

from postlayout_pipeline.errors import (
    NoEligibleItems,
    PipelineError,
    RecordNotEligible,
    RecordNotFound,
    SourceError,
)
from postlayout_pipeline.export.csv_export import export_csv
from postlayout_pipeline.generation.provider import GenerationClient
from postlayout_pipeline.models import (
    CREATE_ELIGIBLE,
    GENERATE_ELIGIBLE,
    BulkError,
    BulkOutcome,
    PipelineRecord,
)
from postlayout_pipeline.pipeline.classify import classify
from postlayout_pipeline.pipeline.filters import (
    FilterOptions,
    WorkingSetStats,
    apply_filters,
    compute_stats,
    paginate,
    total_pages,
)
from postlayout_pipeline.pipeline.validate import ensure_valid, validate_record
from postlayout_pipeline.posts.client import PostCreationClient
from postlayout_pipeline.sources.fixtures import FixtureSource
from postlayout_pipeline.sources.provider import RecordSource
from postlayout_pipeline.storage.session_store import SessionSnapshot

logger = logging.getLogger(__name__)

SELECTABLE = CREATE_ELIGIBLE | GENERATE_ELIGIBLE
# Single-item create also takes briefs without content (create, then trigger generation).
SINGLE_CREATE_ELIGIBLE = CREATE_ELIGIBLE | GENERATE_ELIGIBLE
_READONLY_FIELDS = {"id", "state"}


class PipelineOrchestrator:
    """Owns the working set and drives imports, generation and post creation.

    All record mutations go through this class. Clients only ever see copies
    of records and return fresh result values. Bulk actions run strictly one
    record at a time, with a fixed pause between records.
    """

    def __init__(
        self,
        *,
        source: RecordSource,
        generator: GenerationClient,
        posts: PostCreationClient,
        fallback_source: Optional[RecordSource] = None,
        create_delay_s: float = 0.5,
        generate_delay_s: float = 1.0,
        items_per_page: int = 10,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.source = source
        self.generator = generator
        self.posts = posts
        self.fallback_source = fallback_source or FixtureSource()
        self.create_delay_s = create_delay_s
        self.generate_delay_s = generate_delay_s
        self.items_per_page = items_per_page
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self.records: List[PipelineRecord] = []
        self.selected: Set[str] = set()
        self.filters = FilterOptions()
        self.page = 1

        self.session_id: Optional[str] = None
        self.imported_at: Optional[datetime] = None
        self.import_source: Optional[str] = None
        self.import_error: Optional[str] = None

    # ------------------------------------------------------------------
    # import
    # ------------------------------------------------------------------

    def import_records(self) -> List[PipelineRecord]:
        """Replace the working set with a fresh import.

        Source errors are not propagated: the fixture source takes over and the
        original error is kept in `import_error`.
        """

        self.import_error = None
        try:
            records = self.source.fetch_records()
            self.import_source = self.source.name
        except SourceError as exc:
            logger.warning(
                f"Import from {self.source.name} failed ({type(exc).__name__}: {exc}); using fixture records"
            )
            self.import_error = f"{type(exc).__name__}: {exc}"
            records = self.fallback_source.fetch_records()
            self.import_source = self.fallback_source.name

        self.records = list(records)
        self.selected.clear()
        self.page = 1
        self.session_id = str(uuid.uuid4())
        self.imported_at = self.clock()

        logger.info(f"Working set replaced: {len(self.records)} records from {self.import_source}")
        return self.working_set()

    def working_set(self) -> List[PipelineRecord]:
        return [r.model_copy(deep=True) for r in self.records]

    # ------------------------------------------------------------------
    # record access / transitions
    # ------------------------------------------------------------------

    def _index(self, record_id: str) -> int:
        for idx, record in enumerate(self.records):
            if record.id == record_id:
                return idx
        raise RecordNotFound(record_id)

    def get(self, record_id: str) -> PipelineRecord:
        return self.records[self._index(record_id)].model_copy(deep=True)

    def _transition(self, record_id: str, state: str, **changes: Any) -> PipelineRecord:
        idx = self._index(record_id)
        if state != "error":
            changes.setdefault("error_message", None)
        updated = PipelineRecord.model_validate({**self.records[idx].model_dump(), "state": state, **changes})
        self.records[idx] = updated
        return updated

    def update_record(self, record_id: str, **changes: Any) -> PipelineRecord:
        """Edit brief/passthrough fields of a record.

        A content change re-derives ready/need_generate for records that have
        not been submitted yet.
        """

        readonly = _READONLY_FIELDS.intersection(changes)
        if readonly:
            raise ValueError(f"fields cannot be edited: {sorted(readonly)}")
        unknown = set(changes) - set(PipelineRecord.model_fields)
        if unknown:
            raise ValueError(f"unknown record fields: {sorted(unknown)}")

        idx = self._index(record_id)
        current = self.records[idx]
        if current.state == "generating":
            raise RecordNotEligible(record_id, current.state, "edit")

        data = current.model_dump()
        data.update(changes)
        if "content" in changes and current.state in ("pending", "ready", "need_generate"):
            data["state"] = classify(current.state, data.get("content"))

        updated = PipelineRecord.model_validate(data)
        self.records[idx] = updated
        return updated.model_copy(deep=True)

    def retry_record(self, record_id: str) -> PipelineRecord:
        """Manual retry: move an errored record back to an actionable state."""

        current = self.records[self._index(record_id)]
        if current.state != "error":
            raise RecordNotEligible(record_id, current.state, "retry")

        # A post that already exists must not be created twice.
        if current.external_post_id:
            return self._transition(record_id, "created").model_copy(deep=True)
        return self._transition(record_id, classify(None, current.content)).model_copy(deep=True)

    # ------------------------------------------------------------------
    # selection
    # ------------------------------------------------------------------

    def select(self, record_id: str) -> bool:
        """Add a record to the selection; returns False if it is not selectable."""
        record = self.records[self._index(record_id)]
        if record.state not in SELECTABLE:
            return False
        self.selected.add(record_id)
        return True

    def toggle(self, record_id: str) -> bool:
        if record_id in self.selected:
            self.selected.discard(record_id)
            return False
        return self.select(record_id)

    def select_all_on_page(self) -> Set[str]:
        """Select every selectable record on the current page, or clear them if all are selected."""
        page_ids = {r.id for r in self.page_records() if r.state in SELECTABLE}
        if page_ids and page_ids <= self.selected:
            self.selected -= page_ids
        else:
            self.selected |= page_ids
        return set(self.selected)

    def clear_selection(self) -> None:
        self.selected.clear()

    # ------------------------------------------------------------------
    # derived views
    # ------------------------------------------------------------------

    def set_filters(self, **criteria: Any) -> FilterOptions:
        data = self.filters.model_dump()
        data.update(criteria)
        self.filters = FilterOptions.model_validate(data)
        self.page = 1
        return self.filters

    def filtered(self) -> List[PipelineRecord]:
        return apply_filters(self.records, self.filters, now=self.clock())

    def total_pages(self) -> int:
        return total_pages(len(self.filtered()), self.items_per_page)

    def set_page(self, page: int) -> int:
        self.page = max(1, min(page, max(1, self.total_pages())))
        return self.page

    def page_records(self) -> List[PipelineRecord]:
        return paginate(self.filtered(), self.page, self.items_per_page)

    def stats(self) -> WorkingSetStats:
        return compute_stats(self.records, now=self.clock())

    # ------------------------------------------------------------------
    # single-item actions
    # ------------------------------------------------------------------

    def create_one(self, record_id: str) -> PipelineRecord:
        """Create a post for one record.

        Raises ValidationFailed before any network call for invalid records.
        Creation failures end in state "error" and are not raised.
        """

        record = self.records[self._index(record_id)]
        if record.state not in SINGLE_CREATE_ELIGIBLE:
            raise RecordNotEligible(record_id, record.state, "create")
        ensure_valid(record)
        self._create(record)
        return self.get(record_id)

    def generate_one(self, record_id: str) -> PipelineRecord:
        record = self.records[self._index(record_id)]
        if record.state not in GENERATE_ELIGIBLE:
            raise RecordNotEligible(record_id, record.state, "generate")
        self._generate(record)
        return self.get(record_id)

    def _create(self, record: PipelineRecord) -> Optional[str]:
        """Run one create cycle; returns the error message or None."""

        needs_generation = record.state == "need_generate" or not record.has_content()
        self._transition(record.id, "generating")

        try:
            created = self.posts.create_post(record.model_copy(deep=True))
        except Exception as exc:
            return self._fail(record.id, "create", exc, str(exc))

        self._transition(
            record.id,
            "created",
            external_post_id=created.external_post_id,
            created_at=self.clock(),
        )
        logger.info(f"Created post {created.external_post_id} for {record.id}")

        if needs_generation:
            try:
                result = self.generator.trigger(record.model_copy(deep=True), created.external_post_id)
            except Exception as exc:
                return self._fail(record.id, "trigger", exc, f"Failed to trigger content generation: {exc}")
            self._transition(record.id, "created", generation_trigger_id=result.trigger_id)

        return None

    def _generate(self, record: PipelineRecord) -> Optional[str]:
        self._transition(record.id, "generating")

        try:
            result = self.generator.generate(record.model_copy(deep=True))
        except Exception as exc:
            return self._fail(record.id, "generate", exc, str(exc))

        changes: dict = {"generation_trigger_id": result.trigger_id}
        if result.content is not None:
            changes["content"] = result.content
            changes["body"] = result.content
        try:
            self._transition(record.id, "ready", **changes)
        except ValidationError as exc:
            message = f"Invalid generation result: {exc.error_count()} invalid field(s)"
            return self._fail(record.id, "generate", exc, message)
        logger.info(f"Generated content for {record.id} (trigger {result.trigger_id})")
        return None

    def _fail(self, record_id: str, action: str, exc: Exception, message: str) -> str:
        if isinstance(exc, PipelineError):
            logger.error(f"{action} failed for {record_id}: {type(exc).__name__}: {exc}")
        else:
            logger.exception(f"Unexpected error during {action} for {record_id}")
        self._transition(record_id, "error", error_message=message)
        return message

    # ------------------------------------------------------------------
    # bulk actions
    # ------------------------------------------------------------------

    def bulk_create(
        self, ids: Optional[Iterable[str]] = None, *, cancel: Optional[threading.Event] = None
    ) -> BulkOutcome:
        """Create posts for the selected (or given) pending/ready records."""
        return self._run_bulk("create", ids, CREATE_ELIGIBLE, self._bulk_create_item, self.create_delay_s, cancel)

    def bulk_generate(
        self, ids: Optional[Iterable[str]] = None, *, cancel: Optional[threading.Event] = None
    ) -> BulkOutcome:
        """Generate content for the selected (or given) need_generate records."""
        return self._run_bulk("generate", ids, GENERATE_ELIGIBLE, self._generate, self.generate_delay_s, cancel)

    def _bulk_create_item(self, record: PipelineRecord) -> Optional[str]:
        validation = validate_record(record)
        if not validation.is_valid:
            logger.warning(f"Skipping create for {record.id}: {validation.errors}")
            return f"Validation failed: {', '.join(validation.errors)}"
        return self._create(record)

    def _run_bulk(
        self,
        action: str,
        ids: Optional[Iterable[str]],
        eligible: frozenset,
        step: Callable[[PipelineRecord], Optional[str]],
        delay_s: float,
        cancel: Optional[threading.Event],
    ) -> BulkOutcome:
        wanted = set(self.selected if ids is None else ids)
        batch_ids = [r.id for r in self.records if r.id in wanted and r.state in eligible]
        if not batch_ids:
            raise NoEligibleItems(action)

        logger.info(f"Bulk {action} started for {len(batch_ids)} records")

        successful = 0
        failed = 0
        processed = 0
        cancelled = False
        errors: List[BulkError] = []

        for idx, record_id in enumerate(batch_ids):
            if idx > 0 and delay_s > 0:
                time.sleep(delay_s)
            if cancel is not None and cancel.is_set():
                cancelled = True
                logger.warning(f"Bulk {action} cancelled after {processed} of {len(batch_ids)} records")
                break

            error = step(self.records[self._index(record_id)])
            processed += 1
            if error is None:
                successful += 1
            else:
                failed += 1
                errors.append(BulkError(record_id=record_id, error=error))

        self.selected.clear()

        outcome = BulkOutcome(
            action=action,
            total=len(batch_ids),
            successful=successful,
            failed=failed,
            errors=errors,
            skipped=len(batch_ids) - processed,
            cancelled=cancelled,
        )
        logger.info(f"Bulk {action} completed: {successful} successful, {failed} failed, {outcome.skipped} skipped")
        return outcome

    # ------------------------------------------------------------------
    # export / snapshot
    # ------------------------------------------------------------------

    def export_csv(self) -> bytes:
        return export_csv(self.records)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id or str(uuid.uuid4()),
            source=self.import_source,
            imported_at=self.imported_at,
            updated_at=self.clock(),
            records=self.working_set(),
        )

    def restore(self, snapshot: SessionSnapshot) -> None:
        self.records = [r.model_copy(deep=True) for r in snapshot.records]
        self.session_id = snapshot.session_id
        self.import_source = snapshot.source
        self.imported_at = snapshot.imported_at
        self.selected.clear()
        self.page = 1
