import pytest

from durastep import DurableContext
from durastep.errors import RecordConflict, StoreUnavailable
from durastep.persistence import (
    InMemoryStepRecordStore,
    SQLiteStepRecordStore,
    StepRecord,
    StepStatus,
)


def _record(label="step1", sequence=1, execution_id="wf-1", **kwargs):
    return StepRecord(
        execution_id=execution_id,
        step_label=label,
        sequence_number=sequence,
        **kwargs,
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryStepRecordStore()
    return SQLiteStepRecordStore(tmp_path / "steps.db")


@pytest.mark.asyncio
async def test_store_crud(store):
    running = _record(status=StepStatus.RUNNING)
    await store.upsert(running)
    assert (await store.get(running.step_key)).status == StepStatus.RUNNING

    done = running.transition(StepStatus.COMPLETED, result={"x": [1, 2]})
    await store.upsert(done)

    fetched = await store.get(running.step_key)
    assert fetched.status == StepStatus.COMPLETED
    assert fetched.result_payload == {"x": [1, 2]}
    assert fetched.step_label == "step1"
    assert fetched.sequence_number == 1
    assert await store.get("wf-1:missing:9") is None


@pytest.mark.asyncio
async def test_completed_records_are_never_overwritten(store):
    done = _record(status=StepStatus.COMPLETED, result_payload="first")
    await store.upsert(done)

    with pytest.raises(RecordConflict):
        await store.upsert(_record(status=StepStatus.RUNNING, attempt=2))

    assert (await store.get(done.step_key)).result_payload == "first"


@pytest.mark.asyncio
async def test_failed_records_can_be_overwritten(store):
    await store.upsert(_record(status=StepStatus.FAILED, error_message="boom"))
    await store.upsert(_record(status=StepStatus.RUNNING, attempt=2))

    record = await store.get("wf-1:step1:1")
    assert record.status == StepStatus.RUNNING
    assert record.error_message is None
    assert record.attempt == 2


@pytest.mark.asyncio
async def test_completed_none_payload_round_trips(store):
    await store.upsert(_record(status=StepStatus.COMPLETED))
    record = await store.get("wf-1:step1:1")
    assert record.status == StepStatus.COMPLETED
    assert record.result_payload is None


@pytest.mark.asyncio
async def test_listing_and_deletion(store):
    await store.upsert(_record("b", 2, status=StepStatus.RUNNING))
    await store.upsert(_record("a", 1, status=StepStatus.COMPLETED, result_payload=1))
    await store.upsert(_record("a", 1, execution_id="wf-2", status=StepStatus.RUNNING))

    records = await store.list_records("wf-1")
    assert [r.sequence_number for r in records] == [1, 2]
    assert await store.list_executions() == ["wf-1", "wf-2"]

    await store.delete("wf-1:b:2")
    assert [r.step_label for r in await store.list_records("wf-1")] == ["a"]

    assert await store.delete_execution("wf-1") == 1
    assert await store.list_executions() == ["wf-2"]


@pytest.mark.asyncio
async def test_sqlite_store_persists_across_instances(tmp_path):
    path = tmp_path / "steps.db"
    first = SQLiteStepRecordStore(path)
    await first.upsert(_record(status=StepStatus.COMPLETED, result_payload={"ok": True}))
    first.close()

    second = SQLiteStepRecordStore(path)
    record = await second.get("wf-1:step1:1")
    assert record.result_payload == {"ok": True}
    assert record.last_updated.tzinfo is not None


@pytest.mark.asyncio
async def test_sqlite_errors_become_store_unavailable(tmp_path):
    store = SQLiteStepRecordStore(tmp_path / "steps.db")
    store.close()

    with pytest.raises(StoreUnavailable) as exc_info:
        await store.get("wf-1:step1:1")
    assert exc_info.value.operation == "get"


def test_sqlite_unopenable_path_is_store_unavailable(tmp_path):
    with pytest.raises(StoreUnavailable):
        SQLiteStepRecordStore(tmp_path / "missing-dir" / "steps.db")


@pytest.mark.asyncio
async def test_separator_in_ids_does_not_share_records(store):
    first = await DurableContext("acme", store).step("billing:charge", lambda: "a-result")
    second = await DurableContext("acme:billing", store).step("charge", lambda: "b-result")

    assert (first, second) == ("a-result", "b-result")
    assert [r.step_label for r in await store.list_records("acme")] == ["billing:charge"]
    assert [r.step_label for r in await store.list_records("acme:billing")] == ["charge"]
