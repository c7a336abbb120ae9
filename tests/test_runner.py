"""Execution pass tests covering crash/resume scenarios."""

import pytest

from durastep import (
    InterruptAfter,
    InterruptionToken,
    OutcomeStatus,
    RecordingObserver,
    StepStatus,
    StoreUnavailable,
    WorkflowRunner,
)
from durastep.config import EngineSettings
from durastep.persistence import InMemoryStepRecordStore


class Recorder:
    def __init__(self):
        self.calls = []

    def work(self, label, value):
        def run():
            self.calls.append(label)
            return value

        return run


def make_workflow(recorder):
    async def workflow(ctx):
        a = await ctx.step("stepA", recorder.work("stepA", "a"))
        b, c = await ctx.parallel(
            [
                ctx.call("stepB", recorder.work("stepB", "b")),
                ctx.call("stepC", recorder.work("stepC", "c")),
            ]
        )
        d = await ctx.step("stepD", recorder.work("stepD", "d"))
        return [a, b, c, d]

    return workflow


def _runner(store, **kwargs):
    return WorkflowRunner(store=store, settings=EngineSettings(**kwargs))


@pytest.mark.asyncio
async def test_crash_before_last_step_then_resume():
    store = InMemoryStepRecordStore()
    recorder = Recorder()
    workflow = make_workflow(recorder)
    runner = _runner(store)

    token = InterruptionToken()
    first = await runner.run(
        workflow, "wf-1", token=token, observer=InterruptAfter(token, completed=3)
    )

    assert first.status == OutcomeStatus.INTERRUPTED
    assert first.failed_step == "stepD"
    assert first.failed_sequence == 4
    assert recorder.calls.count("stepD") == 0
    assert [r.step_label for r in await runner.history("wf-1")] == ["stepA", "stepB", "stepC"]

    second = await runner.run(workflow, "wf-1")

    assert second.status == OutcomeStatus.COMPLETED
    assert second.result == ["a", "b", "c", "d"]
    assert second.steps_replayed == 3
    assert second.steps_executed == 1
    assert sorted(recorder.calls) == ["stepA", "stepB", "stepC", "stepD"]
    history = await runner.history("wf-1")
    assert history[-1].step_label == "stepD"
    assert history[-1].sequence_number == 4
    assert history[-1].status == StepStatus.COMPLETED


@pytest.mark.asyncio
async def test_step_failure_stops_the_pass():
    store = InMemoryStepRecordStore()
    ran = []

    async def workflow(ctx):
        def boom():
            raise RuntimeError("invalid employee id")

        await ctx.step("stepX", boom)
        await ctx.step("stepY", lambda: ran.append("stepY"))

    outcome = await _runner(store).run(workflow, "wf-2")

    assert outcome.status == OutcomeStatus.FAILED
    assert outcome.failed_step == "stepX"
    assert outcome.error == "invalid employee id"
    assert ran == []
    records = await store.list_records("wf-2")
    assert len(records) == 1
    assert records[0].status == StepStatus.FAILED


@pytest.mark.asyncio
async def test_inputs_are_passed_to_workflow():
    async def workflow(ctx, name):
        return await ctx.step("greet", lambda: f"hello {name}")

    outcome = await _runner(InMemoryStepRecordStore()).run(workflow, "wf-3", name="Alice")
    assert outcome.result == "hello Alice"


@pytest.mark.asyncio
async def test_start_and_resume_messages():
    store = InMemoryStepRecordStore()
    observer = RecordingObserver()
    runner = WorkflowRunner(store=store, observer=observer, settings=EngineSettings())

    async def workflow(ctx):
        return await ctx.step("only", lambda: 1)

    await runner.run(workflow, "wf-4")
    await runner.run(workflow, "wf-4")

    messages = [m for _, m in observer.messages]
    assert any(m.startswith("Starting new durable execution wf-4") for m in messages)
    assert any(m.startswith("Resuming execution wf-4") for m in messages)


@pytest.mark.asyncio
async def test_outcome_keeps_last_history_limit_messages():
    async def workflow(ctx):
        for label in ("a", "b", "c"):
            await ctx.step(label, lambda: label)

    full = await _runner(InMemoryStepRecordStore()).run(workflow, "wf-h")
    short = await WorkflowRunner(
        store=InMemoryStepRecordStore(), settings=EngineSettings(history_limit=2)
    ).run(workflow, "wf-h")

    assert full.messages[0] == "Starting new durable execution wf-h..."
    assert len(full.messages) == 8
    assert short.messages == [
        "Step [c] (seq 3) finished successfully.",
        "Execution wf-h completed successfully!",
    ]


@pytest.mark.asyncio
async def test_retry_failed_clears_failed_records_for_raise_policy():
    store = InMemoryStepRecordStore()
    runner = _runner(store, failed_step_policy="raise")
    attempts = []

    async def workflow(ctx):
        def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("timeout")
            return "ok"

        return await ctx.step("flaky", flaky)

    assert (await runner.run(workflow, "wf-5")).status == OutcomeStatus.FAILED
    assert (await runner.run(workflow, "wf-5")).status == OutcomeStatus.FAILED
    assert len(attempts) == 1

    cleared = await runner.retry_failed("wf-5")
    assert cleared == ["wf-5:flaky:1"]

    outcome = await runner.run(workflow, "wf-5")
    assert outcome.status == OutcomeStatus.COMPLETED
    assert outcome.result == "ok"


@pytest.mark.asyncio
async def test_reset_and_summaries():
    store = InMemoryStepRecordStore()
    runner = _runner(store)

    async def workflow(ctx):
        await ctx.step("a", lambda: 1)
        await ctx.step("b", lambda: 2)

    await runner.run(workflow, "wf-6")
    summaries = await runner.summaries()
    assert len(summaries) == 1
    assert summaries[0].execution_id == "wf-6"
    assert summaries[0].completed == 2

    assert await runner.reset("wf-6") == 2
    assert await runner.history("wf-6") == []


@pytest.mark.asyncio
async def test_store_unavailable_is_fatal():
    class BrokenStore(InMemoryStepRecordStore):
        async def upsert(self, record):
            raise OSError("read-only file system")

    async def workflow(ctx):
        await ctx.step("a", lambda: 1)

    with pytest.raises(StoreUnavailable):
        await _runner(BrokenStore()).run(workflow, "wf-7")
