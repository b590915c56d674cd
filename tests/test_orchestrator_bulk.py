from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from postlayout_pipeline.errors import CreationRejected, GenerationRejected, NoEligibleItems
from postlayout_pipeline.generation.provider import GenerationClient, GenerationResult
from postlayout_pipeline.models import PipelineRecord
from postlayout_pipeline.pipeline import orchestrator as orchestrator_mod
from postlayout_pipeline.pipeline.orchestrator import PipelineOrchestrator
from postlayout_pipeline.posts.client import CreationResult
from postlayout_pipeline.sources.provider import RecordSource
from postlayout_pipeline.storage.session_store import load_session, save_session

NOW = datetime(2025, 6, 2, 10, 0, tzinfo=timezone.utc)


class _ListSource(RecordSource):
    name = "test"

    def __init__(self, records: List[PipelineRecord]) -> None:
        self.records = records

    def fetch_records(self) -> List[PipelineRecord]:
        return [r.model_copy(deep=True) for r in self.records]


class _FakeGenerator(GenerationClient):
    name = "fake"

    def __init__(self, *, fail_ids: Optional[Dict[str, str]] = None, content: Optional[str] = "Generated body") -> None:
        self.fail_ids = fail_ids or {}
        self.content = content
        self.generated: List[str] = []
        self.triggered: List[tuple[str, str]] = []

    def generate(self, record: PipelineRecord) -> GenerationResult:
        self.generated.append(record.id)
        if record.id in self.fail_ids:
            raise GenerationRejected(self.fail_ids[record.id], status_code=500)
        return GenerationResult(trigger_id=f"trig_{record.id}", content=self.content)

    def trigger(self, record: PipelineRecord, post_id: str) -> GenerationResult:
        self.triggered.append((record.id, post_id))
        if record.id in self.fail_ids:
            raise GenerationRejected(self.fail_ids[record.id])
        return GenerationResult(trigger_id=f"trig_{post_id}")


class _FakePosts:
    def __init__(self, *, fail_ids: Optional[Dict[str, str]] = None) -> None:
        self.fail_ids = fail_ids or {}
        self.created: List[PipelineRecord] = []

    def create_post(self, record: PipelineRecord) -> CreationResult:
        self.created.append(record)
        if record.id in self.fail_ids:
            raise CreationRejected(self.fail_ids[record.id], status_code=400)
        return CreationResult(external_post_id=f"post_{record.id}")


def _record(record_id: str, *, content: str = "Body", keyword: str = "kw", state: str = "ready") -> PipelineRecord:
    return PipelineRecord(
        id=record_id,
        outline=f"Outline {record_id}",
        meta_title=f"Title {record_id}",
        meta_description=f"Description {record_id}",
        keyword=keyword,
        content=content,
        state=state,
        imported_at=NOW,
    )


def _orchestrator(records, *, generator=None, posts=None) -> PipelineOrchestrator:
    orch = PipelineOrchestrator(
        source=_ListSource(records),
        generator=generator or _FakeGenerator(),
        posts=posts or _FakePosts(),
        create_delay_s=0.5,
        generate_delay_s=1.0,
        clock=lambda: NOW,
    )
    orch.import_records()
    return orch


@pytest.fixture()
def sleeps(monkeypatch) -> List[float]:
    calls: List[float] = []
    monkeypatch.setattr(orchestrator_mod.time, "sleep", lambda s: calls.append(s))
    return calls


def test_bulk_generate_reports_per_item_failures(sleeps) -> None:
    generator = _FakeGenerator(fail_ids={"B": "workflow failed"})
    orch = _orchestrator(
        [_record(i, content="", state="need_generate") for i in ("A", "B", "C")],
        generator=generator,
    )
    for record_id in ("C", "A", "B"):
        assert orch.select(record_id)

    outcome = orch.bulk_generate()

    assert outcome.total == 3
    assert (outcome.successful, outcome.failed, outcome.skipped) == (2, 1, 0)
    assert outcome.successful + outcome.failed + outcome.skipped == outcome.total
    assert [(e.record_id, e.error) for e in outcome.errors] == [("B", "workflow failed")]

    # working-set order, not selection order
    assert generator.generated == ["A", "B", "C"]
    assert sleeps == [1.0, 1.0]

    a, b, c = (orch.get(i) for i in ("A", "B", "C"))
    assert a.state == "ready" and a.content == "Generated body" and a.generation_trigger_id == "trig_A"
    assert b.state == "error" and b.error_message == "workflow failed"
    assert c.state == "ready"
    assert orch.selected == set()


def test_generate_without_returned_content_keeps_content(sleeps) -> None:
    orch = _orchestrator([_record("A", content="", state="need_generate")], generator=_FakeGenerator(content=None))

    outcome = orch.bulk_generate(["A"])

    assert outcome.successful == 1
    record = orch.get("A")
    assert record.state == "ready"
    assert record.content == ""
    assert sleeps == []


def test_bulk_create_with_rejection_on_second_item(sleeps) -> None:
    posts = _FakePosts(fail_ids={"B": "slug already exists"})
    orch = _orchestrator([_record("A"), _record("B")], posts=posts)
    orch.select("A")
    orch.select("B")

    outcome = orch.bulk_create()

    assert (outcome.successful, outcome.failed) == (1, 1)
    assert outcome.errors[0].record_id == "B"
    assert outcome.errors[0].error == "slug already exists"
    assert orch.get("A").state == "created"
    assert orch.get("A").external_post_id == "post_A"
    assert orch.get("A").created_at == NOW
    assert orch.get("B").state == "error"
    assert orch.get("B").external_post_id is None
    assert sleeps == [0.5]


def test_bulk_create_continues_after_middle_failure(sleeps) -> None:
    posts = _FakePosts(fail_ids={"B": "slug already exists"})
    orch = _orchestrator([_record("A"), _record("B"), _record("C")], posts=posts)
    for record_id in ("C", "B", "A"):
        orch.select(record_id)

    outcome = orch.bulk_create()

    assert (outcome.total, outcome.successful, outcome.failed, outcome.skipped) == (3, 2, 1, 0)
    assert [e.record_id for e in outcome.errors] == ["B"]
    assert [r.id for r in posts.created] == ["A", "B", "C"]
    assert orch.get("A").state == "created"
    assert orch.get("B").state == "error"
    assert orch.get("C").state == "created"
    assert orch.get("C").external_post_id == "post_C"
    assert sleeps == [0.5, 0.5]


def test_no_eligible_items_leaves_records_untouched(sleeps) -> None:
    orch = _orchestrator([_record("A", content="", state="need_generate"), _record("B", state="created")])
    before = orch.working_set()

    with pytest.raises(NoEligibleItems):
        orch.bulk_create(["A", "B"])
    with pytest.raises(NoEligibleItems):
        orch.bulk_generate()

    assert orch.working_set() == before
    assert sleeps == []


def test_ineligible_ids_are_filtered_out(sleeps) -> None:
    posts = _FakePosts()
    orch = _orchestrator([_record("A"), _record("B", state="created"), _record("C", state="pending")], posts=posts)

    outcome = orch.bulk_create(["A", "B", "C", "missing"])

    assert outcome.total == 2
    assert [r.id for r in posts.created] == ["A", "C"]


def test_bulk_create_validates_before_calling_api(sleeps) -> None:
    posts = _FakePosts()
    orch = _orchestrator([_record("A", keyword=""), _record("B")], posts=posts)

    outcome = orch.bulk_create(["A", "B"])

    assert (outcome.successful, outcome.failed) == (1, 1)
    assert outcome.errors[0].record_id == "A"
    assert outcome.errors[0].error == "Validation failed: Keyword is required"
    assert [r.id for r in posts.created] == ["B"]
    # invalid record is left as it was
    assert orch.get("A").state == "ready"
    assert orch.get("A").error_message is None


def test_generate_then_create_flow(sleeps) -> None:
    generator = _FakeGenerator()
    posts = _FakePosts()
    record = PipelineRecord(
        id="guide",
        outline="Guide to X",
        meta_title="Guide to X",
        meta_description="Everything about X",
        keyword="guide x",
        content="",
        state="need_generate",
    )
    orch = _orchestrator([record], generator=generator, posts=posts)

    generated = orch.bulk_generate(["guide"])
    assert generated.successful == 1
    assert orch.get("guide").state == "ready"

    created = orch.bulk_create(["guide"])
    assert created.successful == 1

    final = orch.get("guide")
    assert final.state == "created"
    assert final.external_post_id == "post_guide"
    assert posts.created[0].content == "Generated body"
    # content already present: no follow-up trigger
    assert generator.triggered == []


def test_single_create_of_brief_without_content_triggers_generation() -> None:
    generator = _FakeGenerator()
    orch = _orchestrator([_record("A", content="", state="need_generate")], generator=generator)

    record = orch.create_one("A")

    assert record.state == "created"
    assert record.external_post_id == "post_A"
    assert record.generation_trigger_id == "trig_post_A"
    assert generator.triggered == [("A", "post_A")]


def test_failed_follow_up_trigger_marks_error_but_keeps_post_id() -> None:
    generator = _FakeGenerator(fail_ids={"A": "webhook down"})
    orch = _orchestrator([_record("A", content="", state="need_generate")], generator=generator)

    record = orch.create_one("A")

    assert record.state == "error"
    assert record.external_post_id == "post_A"
    assert record.error_message == "Failed to trigger content generation: webhook down"


def test_clients_receive_copies(sleeps) -> None:
    posts = _FakePosts()
    orch = _orchestrator([_record("A")], posts=posts)

    orch.bulk_create(["A"])
    posts.created[0].content = "tampered"

    assert orch.get("A").content == "Body"


def test_cancel_between_items_skips_the_rest(monkeypatch) -> None:
    cancel = threading.Event()
    # the pause before the second record is where the cancel lands
    monkeypatch.setattr(orchestrator_mod.time, "sleep", lambda _s: cancel.set())
    posts = _FakePosts()
    orch = _orchestrator([_record("A"), _record("B"), _record("C")], posts=posts)

    outcome = orch.bulk_create(["A", "B", "C"], cancel=cancel)

    assert outcome.cancelled is True
    assert (outcome.successful, outcome.failed, outcome.skipped) == (1, 0, 2)
    assert [r.id for r in posts.created] == ["A"]
    assert orch.get("B").state == "ready"
    assert orch.get("C").state == "ready"
    assert orch.selected == set()


def test_unexpected_client_exception_becomes_error_state(sleeps) -> None:
    class _BrokenPosts:
        def create_post(self, record):
            raise RuntimeError("kaboom")

    orch = _orchestrator([_record("A")], posts=_BrokenPosts())

    outcome = orch.bulk_create(["A"])

    assert outcome.failed == 1
    assert orch.get("A").state == "error"
    assert orch.get("A").error_message == "kaboom"


def test_invalid_generation_result_marks_error_and_keeps_snapshot_loadable(sleeps, tmp_path) -> None:
    class _DictContentGenerator(_FakeGenerator):
        def generate(self, record: PipelineRecord) -> GenerationResult:
            return GenerationResult(trigger_id="7", content={"html": "<p>x</p>"})  # type: ignore[arg-type]

    orch = _orchestrator([_record("A", content="", state="need_generate")], generator=_DictContentGenerator())

    outcome = orch.bulk_generate(["A"])

    assert (outcome.successful, outcome.failed) == (0, 1)
    record = orch.get("A")
    assert record.state == "error"
    assert record.content == ""
    assert record.error_message.startswith("Invalid generation result")

    path = tmp_path / "session.json"
    save_session(path, orch.snapshot())
    assert load_session(path).records[0].state == "error"
