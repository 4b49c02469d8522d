"""PipelineEngine ordering, persistence and failure semantics."""

from datetime import datetime, timedelta, timezone

import pytest

from reelpipe.errors import PipelineFailed
from reelpipe.orchestrator.engine import PipelineEngine, PipelineStep
from reelpipe.schemas.execution import TaskStatus
from reelpipe.schemas.results import MergedVideo, ScriptRecord, ScriptScene, VideosContent, VideosRecord


def _script(label: str) -> ScriptRecord:
    return ScriptRecord(
        id=f"reel-{label}",
        content=[ScriptScene(event=label, image_prompt=f"{label} image", voice_narration=label)],
    )


def _recording_steps(n: int, seen: list, fail_at: int = -1):
    def make(index: int):
        async def run(prior, execution_id):
            seen.append((index, [r.id for r in prior], execution_id))
            if index == fail_at:
                raise RuntimeError(f"step {index} exploded")
            return _script(str(index))
        return PipelineStep(f"step-{index}", run)
    return [make(i) for i in range(n)]


@pytest.mark.asyncio
async def test_successful_run_completes_every_task(store):
    seen = []
    engine = PipelineEngine(store)

    execution = await engine.run(_recording_steps(4, seen))

    assert [t.status for t in execution.tasks] == [TaskStatus.COMPLETED] * 4
    assert execution.end_time is not None
    assert execution.end_time >= execution.start_time
    assert [t.name for t in execution.tasks] == ["step-0", "step-1", "step-2", "step-3"]

    stored = await store.get(execution.id)
    assert stored.model_dump(mode="json") == execution.model_dump(mode="json")


@pytest.mark.asyncio
async def test_prior_results_have_length_i_in_step_order(store):
    seen = []
    await PipelineEngine(store).run(_recording_steps(4, seen))

    for index, prior_ids, _ in seen:
        assert prior_ids == [f"reel-{i}" for i in range(index)]


@pytest.mark.asyncio
@pytest.mark.parametrize("n,k", [(1, 0), (3, 0), (3, 1), (5, 4), (6, 3)])
async def test_failure_at_step_k_halts_run(store, n, k):
    seen = []
    engine = PipelineEngine(store)

    with pytest.raises(PipelineFailed) as exc_info:
        await engine.run(_recording_steps(n, seen, fail_at=k))

    failed = exc_info.value
    assert failed.step_index == k
    assert failed.step_name == f"step-{k}"
    assert isinstance(failed.cause, RuntimeError)

    stored = await store.get(failed.execution.id)
    statuses = [t.status for t in stored.tasks]
    assert statuses[:k] == [TaskStatus.COMPLETED] * k
    assert statuses[k] == TaskStatus.FAILED
    assert statuses[k + 1:] == [TaskStatus.PENDING] * (n - k - 1)
    assert stored.end_time is None
    assert stored.tasks[k].error.message == f"step {k} exploded"
    assert "RuntimeError" in stored.tasks[k].error.stack
    assert all(t.result is None for t in stored.tasks[k:])

    # steps after the failure never ran
    assert [index for index, _, _ in seen] == list(range(k + 1))


@pytest.mark.asyncio
async def test_status_persisted_before_each_step_runs(store):
    observed = []

    async def probe(prior, execution_id):
        record = await store.get(execution_id)
        observed.append([t.status for t in record.tasks])
        return _script("x")

    steps = [PipelineStep("a", probe), PipelineStep("b", probe)]
    await PipelineEngine(store).run(steps)

    assert observed[0] == [TaskStatus.IN_PROGRESS, TaskStatus.PENDING]
    assert observed[1] == [TaskStatus.COMPLETED, TaskStatus.IN_PROGRESS]


@pytest.mark.asyncio
async def test_each_run_is_a_new_execution(store):
    ids = iter(["exec-a", "exec-b"])
    engine = PipelineEngine(store, id_factory=lambda: next(ids))

    first = await engine.run(_recording_steps(1, []))
    second = await engine.run(_recording_steps(1, []))

    assert (first.id, second.id) == ("exec-a", "exec-b")
    assert [e.id for e in await store.list_all()] == ["exec-a", "exec-b"]


@pytest.mark.asyncio
async def test_steps_cannot_mutate_prior_results(store):
    async def produce(prior, execution_id):
        return VideosRecord(
            content=VideosContent(videos=[], merged_video=MergedVideo(blob_key="m.mp4"), script_id="s")
        )

    async def vandalize(prior, execution_id):
        prior[0].content.merged_video.blob_key = "tampered.mp4"
        return _script("after")

    execution = await PipelineEngine(store).run(
        [PipelineStep("videos", produce), PipelineStep("vandal", vandalize)]
    )

    assert execution.tasks[0].result.content.merged_video.blob_key == "m.mp4"
    stored = await store.get(execution.id)
    assert stored.tasks[0].result.content.merged_video.blob_key == "m.mp4"


@pytest.mark.asyncio
async def test_clock_and_progress_callback(store):
    start = datetime(2024, 6, 1, 8, 0, tzinfo=timezone.utc)
    ticks = iter([start, start + timedelta(minutes=3)])
    messages = []
    engine = PipelineEngine(
        store,
        clock=lambda: next(ticks),
        id_factory=lambda: "exec-clock",
        progress_callback=messages.append,
    )

    execution = await engine.run(_recording_steps(2, []))

    assert execution.start_time == start
    assert execution.end_time == start + timedelta(minutes=3)
    assert messages == ["[1/2] step-0...", "[2/2] step-1...", "Done"]


@pytest.mark.asyncio
async def test_exception_without_message_records_type_name(store):
    async def boom(prior, execution_id):
        raise KeyError()

    with pytest.raises(PipelineFailed) as exc_info:
        await PipelineEngine(store).run([PipelineStep("only", boom)])

    assert exc_info.value.execution.tasks[0].error.message == "KeyError"


@pytest.mark.asyncio
async def test_step_returning_a_non_record_fails_that_step(store):
    calls = []

    async def opaque(prior, execution_id):
        return {"opaque": 1}

    async def never(prior, execution_id):
        calls.append(prior)
        return _script("never")

    with pytest.raises(PipelineFailed) as exc_info:
        await PipelineEngine(store).run([PipelineStep("a", opaque), PipelineStep("b", never)])

    failed = exc_info.value
    assert failed.step_index == 0
    assert isinstance(failed.cause, TypeError)
    assert calls == []

    stored = await store.get(failed.execution.id)
    assert [t.status for t in stored.tasks] == [TaskStatus.FAILED, TaskStatus.PENDING]
    assert stored.tasks[0].result is None
    assert "returned dict" in stored.tasks[0].error.message
    assert [e.id for e in await store.list_all()] == [failed.execution.id]
