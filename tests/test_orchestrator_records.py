from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from postlayout_pipeline.errors import RecordNotEligible, RecordNotFound, SourceUnavailable, ValidationFailed
from postlayout_pipeline.generation.offline import OfflineGenerationClient
from postlayout_pipeline.models import PipelineRecord
from postlayout_pipeline.pipeline.orchestrator import PipelineOrchestrator
from postlayout_pipeline.posts.client import CreationResult
from postlayout_pipeline.sources.fixtures import SAMPLE_LAYOUTS
from postlayout_pipeline.sources.provider import RecordSource

NOW = datetime(2025, 6, 4, 15, 0, tzinfo=timezone.utc)


class _ListSource(RecordSource):
    name = "test"

    def __init__(self, records: List[PipelineRecord]) -> None:
        self.records = records

    def fetch_records(self) -> List[PipelineRecord]:
        return [r.model_copy(deep=True) for r in self.records]


class _FailingSource(RecordSource):
    name = "sheets"

    def fetch_records(self) -> List[PipelineRecord]:
        raise SourceUnavailable("No data found in the Google Sheet")


class _NoPosts:
    def create_post(self, record: PipelineRecord) -> CreationResult:
        raise AssertionError("posts API must not be called")


def _record(record_id: str, *, state: str = "ready", content: str = "Body", **extra) -> PipelineRecord:
    data = {
        "id": record_id,
        "outline": f"Outline {record_id}",
        "meta_title": f"Title {record_id}",
        "meta_description": f"Description {record_id}",
        "keyword": f"keyword {record_id}",
        "content": content,
        "state": state,
        "imported_at": NOW,
    }
    data.update(extra)
    return PipelineRecord(**data)


def _orchestrator(records, *, items_per_page: int = 10, source=None) -> PipelineOrchestrator:
    orch = PipelineOrchestrator(
        source=source or _ListSource(records),
        generator=OfflineGenerationClient(clock=lambda: NOW),
        posts=_NoPosts(),
        create_delay_s=0.0,
        generate_delay_s=0.0,
        items_per_page=items_per_page,
        clock=lambda: NOW,
    )
    orch.import_records()
    return orch


def test_import_falls_back_to_fixture_records() -> None:
    orch = _orchestrator([], source=_FailingSource())

    assert len(orch.records) == len(SAMPLE_LAYOUTS)
    assert orch.import_source == "fixture"
    assert orch.import_error == "SourceUnavailable: No data found in the Google Sheet"
    assert orch.session_id is not None


def test_import_replaces_working_set_and_selection() -> None:
    source = _ListSource([_record("A"), _record("B")])
    orch = _orchestrator([], source=source)
    orch.select("A")

    source.records = [_record("C")]
    records = orch.import_records()

    assert [r.id for r in records] == ["C"]
    assert orch.selected == set()
    assert orch.import_error is None


def test_only_actionable_records_are_selectable() -> None:
    orch = _orchestrator(
        [
            _record("ready"),
            _record("pending", state="pending"),
            _record("needs", state="need_generate", content=""),
            _record("created", state="created"),
            _record("broken", state="error"),
            _record("busy", state="generating"),
        ]
    )

    assert orch.select("ready")
    assert orch.select("pending")
    assert orch.select("needs")
    assert not orch.select("created")
    assert not orch.select("broken")
    assert not orch.select("busy")
    assert orch.selected == {"ready", "pending", "needs"}

    with pytest.raises(RecordNotFound):
        orch.select("nope")


def test_toggle_and_clear() -> None:
    orch = _orchestrator([_record("A")])

    assert orch.toggle("A") is True
    assert orch.toggle("A") is False
    orch.select("A")
    orch.clear_selection()
    assert orch.selected == set()


def test_select_all_on_page_toggles_current_page_only() -> None:
    orch = _orchestrator(
        [_record("A"), _record("B", state="created"), _record("C"), _record("D")],
        items_per_page=2,
    )

    assert orch.select_all_on_page() == {"A"}
    assert orch.select_all_on_page() == set()

    orch.set_page(2)
    assert orch.select_all_on_page() == {"C", "D"}


def test_filters_and_pagination() -> None:
    records = [_record(f"r{i}", state="ready" if i % 2 else "need_generate", content="x" if i % 2 else "") for i in range(5)]
    records.append(_record("old", imported_at=NOW - timedelta(days=1)))
    orch = _orchestrator(records, items_per_page=2)

    assert orch.total_pages() == 3
    assert [r.id for r in orch.page_records()] == ["r0", "r1"]
    assert orch.set_page(99) == 3
    assert [r.id for r in orch.page_records()] == ["r4", "old"]

    orch.set_filters(status="need_generate")
    assert orch.page == 1
    assert [r.id for r in orch.filtered()] == ["r0", "r2", "r4"]

    orch.set_filters(status="all", date_filter="yesterday")
    assert [r.id for r in orch.filtered()] == ["old"]

    orch.set_filters(date_filter="all", search="TITLE R3")
    assert [r.id for r in orch.filtered()] == ["r3"]

    with pytest.raises(ValueError):
        orch.set_filters(status="bogus")


def test_stats_count_states_and_dates() -> None:
    orch = _orchestrator(
        [
            _record("A"),
            _record("B", state="created", imported_at=NOW - timedelta(days=1)),
            _record("C", state="need_generate", content="", imported_at=NOW - timedelta(days=30)),
        ]
    )

    stats = orch.stats()

    assert stats.total == 3
    assert stats.by_state["ready"] == 1
    assert stats.by_state["created"] == 1
    assert stats.by_state["need_generate"] == 1
    assert stats.by_state["error"] == 0
    assert (stats.today, stats.yesterday, stats.this_week) == (1, 1, 2)


def test_update_record_rederives_state_from_content() -> None:
    orch = _orchestrator([_record("A", state="need_generate", content="")])

    updated = orch.update_record("A", content="Fresh body", meta_title="New title")
    assert updated.state == "ready"
    assert updated.meta_title == "New title"

    cleared = orch.update_record("A", content="   ")
    assert cleared.state == "need_generate"

    with pytest.raises(ValueError):
        orch.update_record("A", state="created")


def test_update_record_rejects_unknown_fields() -> None:
    orch = _orchestrator([_record("A")])

    with pytest.raises(ValueError, match="meta_titel"):
        orch.update_record("A", meta_titel="Typo")

    assert orch.get("A").meta_title == "Title A"


def test_update_record_refuses_while_generating() -> None:
    orch = _orchestrator([_record("A", state="generating")])

    with pytest.raises(RecordNotEligible):
        orch.update_record("A", keyword="new")


def test_retry_record_returns_to_actionable_state() -> None:
    orch = _orchestrator(
        [
            _record("with_content", state="error", error_message="boom"),
            _record("without_content", state="error", content=""),
            _record("already_posted", state="error", external_post_id="post_1"),
        ]
    )

    assert orch.retry_record("with_content").state == "ready"
    assert orch.get("with_content").error_message is None
    assert orch.retry_record("without_content").state == "need_generate"
    assert orch.retry_record("already_posted").state == "created"

    with pytest.raises(RecordNotEligible):
        orch.retry_record("with_content")


def test_create_one_rejects_invalid_record_without_side_effects() -> None:
    orch = _orchestrator([_record("A", keyword="")])

    with pytest.raises(ValidationFailed) as exc_info:
        orch.create_one("A")

    assert exc_info.value.errors == ["Keyword is required"]
    assert orch.get("A").state == "ready"


def test_create_one_rejects_ineligible_state() -> None:
    orch = _orchestrator([_record("A", state="created")])

    with pytest.raises(RecordNotEligible):
        orch.create_one("A")


def test_generate_one_with_offline_client() -> None:
    orch = _orchestrator([_record("A", state="need_generate", content="")])

    record = orch.generate_one("A")

    assert record.state == "ready"
    assert record.content.startswith("# Title A")
    assert record.generation_trigger_id.startswith("gen_")


def test_snapshot_restore_round_trip() -> None:
    orch = _orchestrator([_record("A"), _record("B", state="error", error_message="x")])
    orch.select("A")

    snapshot = orch.snapshot()
    other = _orchestrator([])
    other.restore(snapshot)

    assert other.working_set() == orch.working_set()
    assert other.session_id == orch.session_id
    assert other.import_source == "test"
    assert other.selected == set()


def test_working_set_returns_copies() -> None:
    orch = _orchestrator([_record("A")])

    orch.working_set()[0].content = "changed"
    orch.get("A").content = "changed"

    assert orch.get("A").content == "Body"
