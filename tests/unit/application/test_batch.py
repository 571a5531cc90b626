from __future__ import annotations

import asyncio

import pytest

from bili_commenter.application.batch import (
    DEFAULT_COMMENT_INTERVAL,
    BatchCommentOrchestrator,
    BatchPhase,
)
from bili_commenter.domain.events import (
    BatchPollingStopped,
    BatchStatusUpdated,
    StopReason,
)
from bili_commenter.domain.model import TaskStatus, VideoRef
from bili_commenter.infrastructure.exceptions import ApplicationError, TransportError
from bili_commenter.infrastructure.message_bus import FunctionHandler

# Helpers


def make_video(n: int) -> VideoRef:
    return VideoRef(aid=1000 + n, bvid=f"BV{n}", title=f"video {n}")


def status_payload(batch_id: str, total: int, completed: int, failed: int = 0) -> dict:
    tasks = []
    for i in range(total):
        if i < completed - failed:
            status = "success"
        elif i < completed:
            status = "failed"
        else:
            status = "pending"
        tasks.append(
            {
                "id": f"{batch_id}-{i}",
                "video": make_video(i).to_dict(),
                "content": "hello",
                "status": status,
                "error_msg": "rate limited" if status == "failed" else None,
            }
        )
    return {
        "batch_id": batch_id,
        "total": total,
        "completed": completed,
        "success": completed - failed,
        "failed": failed,
        "tasks": tasks,
    }


def poll_failure() -> TransportError:
    return TransportError("get_batch_status", "connection refused")


@pytest.fixture
def orchestrator(operations, bus, scheduler) -> BatchCommentOrchestrator:
    return BatchCommentOrchestrator(operations, bus, scheduler, poll_interval=1.0)


# Unit Tests


@pytest.mark.asyncio
async def test_batch_is_polled_until_all_jobs_complete(
    orchestrator: BatchCommentOrchestrator, gateway, scheduler, bus
):
    gateway.script("batch_send_comments", "batch-1")
    gateway.script(
        "get_batch_status",
        status_payload("batch-1", 3, 0),
        status_payload("batch-1", 3, 1),
        status_payload("batch-1", 3, 3, failed=1),
    )
    videos = [make_video(i) for i in range(3)]

    batch_id = await orchestrator.submit_batch(videos, "hello")

    assert batch_id == "batch-1"
    assert orchestrator.is_polling is True
    assert [h.delay for h in scheduler.pending] == [0]
    submitted = gateway.calls_to("batch_send_comments")[0]
    assert submitted["content"] == "hello"
    assert [v["bvid"] for v in submitted["videos"]] == ["BV0", "BV1", "BV2"]

    await scheduler.run_next()
    assert orchestrator.is_running is True
    assert orchestrator.progress_percent == 0
    assert [h.delay for h in scheduler.pending] == [1.0]

    await scheduler.run_next()
    assert orchestrator.progress_percent == 33

    await scheduler.run_next()
    assert orchestrator.is_polling is False
    assert orchestrator.is_running is False
    assert orchestrator.is_completed is True
    assert orchestrator.progress_percent == 100
    assert orchestrator.phase is BatchPhase.COMPLETED
    assert scheduler.pending == []

    status = orchestrator.batch_status
    assert status is not None
    assert (status.success, status.failed) == (2, 1)
    assert status.tasks[2].status is TaskStatus.FAILED

    assert len(bus.of_type(BatchStatusUpdated)) == 3
    assert bus.of_type(BatchPollingStopped) == [
        BatchPollingStopped(batch_id="batch-1", reason=StopReason.COMPLETED)
    ]
    assert all(p == {"batch_id": "batch-1"} for p in gateway.calls_to("get_batch_status"))


@pytest.mark.asyncio
async def test_five_consecutive_poll_failures_trip_the_breaker(
    orchestrator: BatchCommentOrchestrator, gateway, scheduler, bus
):
    gateway.script("batch_send_comments", "batch-1")
    gateway.script("get_batch_status", poll_failure())
    await orchestrator.submit_batch([make_video(1)], "hello")

    for attempt in range(1, 5):
        await scheduler.run_next()
        assert orchestrator.consecutive_poll_failures == attempt
        assert orchestrator.is_polling is True
        assert len(scheduler.pending) == 1

    await scheduler.run_next()

    assert orchestrator.is_polling is False
    assert orchestrator.breaker_tripped is True
    assert orchestrator.phase is BatchPhase.ABANDONED
    assert scheduler.pending == []
    assert len(gateway.calls_to("get_batch_status")) == 5
    assert bus.of_type(BatchPollingStopped) == [
        BatchPollingStopped(batch_id="batch-1", reason=StopReason.BREAKER_TRIPPED)
    ]


@pytest.mark.asyncio
async def test_successful_poll_resets_failure_counter(
    orchestrator: BatchCommentOrchestrator, gateway, scheduler
):
    gateway.script("batch_send_comments", "batch-1")
    gateway.script(
        "get_batch_status",
        poll_failure(),
        poll_failure(),
        poll_failure(),
        poll_failure(),
        status_payload("batch-1", 2, 0),
        poll_failure(),
    )
    await orchestrator.submit_batch([make_video(1), make_video(2)], "hello")

    for _ in range(4):
        await scheduler.run_next()
    assert orchestrator.consecutive_poll_failures == 4

    await scheduler.run_next()
    assert orchestrator.consecutive_poll_failures == 0
    assert orchestrator.is_polling is True

    for _ in range(4):
        await scheduler.run_next()
    assert orchestrator.is_polling is True
    assert orchestrator.is_running is True

    await scheduler.run_next()
    assert orchestrator.breaker_tripped is True
    assert len(gateway.calls_to("get_batch_status")) == 10


@pytest.mark.asyncio
async def test_new_batch_supersedes_previous_polling(
    orchestrator: BatchCommentOrchestrator, gateway, scheduler, bus
):
    gateway.script("batch_send_comments", "batch-1", "batch-2")
    gateway.script("get_batch_status", status_payload("batch-2", 1, 1))

    await orchestrator.submit_batch([make_video(1)], "first")
    await orchestrator.submit_batch([make_video(2)], "second")

    assert orchestrator.current_batch_id == "batch-2"
    assert len(scheduler.pending) == 1
    assert bus.of_type(BatchPollingStopped) == [
        BatchPollingStopped(batch_id="batch-1", reason=StopReason.SUPERSEDED)
    ]

    await scheduler.run_next()

    assert gateway.calls_to("get_batch_status") == [{"batch_id": "batch-2"}]
    assert orchestrator.phase is BatchPhase.COMPLETED
    assert scheduler.pending == []


@pytest.mark.asyncio
async def test_status_arriving_after_reset_is_discarded(
    orchestrator: BatchCommentOrchestrator, gateway, scheduler, bus
):
    gate = asyncio.Event()

    async def slow_status(params):
        await gate.wait()
        return status_payload(params["batch_id"], 2, 1)

    gateway.script("batch_send_comments", "batch-1")
    gateway.script("get_batch_status", slow_status)
    await orchestrator.submit_batch([make_video(1), make_video(2)], "hello")

    in_flight = asyncio.create_task(scheduler.run_next())
    await asyncio.sleep(0)
    orchestrator.force_reset()
    gate.set()
    await in_flight

    assert orchestrator.batch_status is None
    assert orchestrator.current_batch_id is None
    assert scheduler.pending == []
    assert bus.of_type(BatchStatusUpdated) == []


@pytest.mark.asyncio
async def test_failed_submit_registers_no_batch(
    orchestrator: BatchCommentOrchestrator, gateway, scheduler
):
    gateway.script(
        "batch_send_comments",
        ApplicationError("batch_send_comments", "too fast", code=12009),
    )

    with pytest.raises(ApplicationError) as exc_info:
        await orchestrator.submit_batch([make_video(1)], "hello")

    assert exc_info.value.user_message == "댓글을 너무 자주 보내고 있습니다"
    assert orchestrator.current_batch_id is None
    assert orchestrator.is_loading is False
    assert orchestrator.is_polling is False
    assert orchestrator.phase is BatchPhase.IDLE
    assert scheduler.pending == []


@pytest.mark.asyncio
async def test_stop_polling_is_idempotent(
    orchestrator: BatchCommentOrchestrator, gateway, scheduler
):
    gateway.script("batch_send_comments", "batch-1")
    await orchestrator.submit_batch([make_video(1)], "hello")

    orchestrator.stop_polling()
    orchestrator.stop_polling()

    assert orchestrator.is_polling is False
    assert scheduler.pending == []
    assert orchestrator.current_batch_id == "batch-1"
    assert orchestrator.phase is BatchPhase.STOPPED


@pytest.mark.asyncio
async def test_stopping_while_request_in_flight_schedules_nothing(
    orchestrator: BatchCommentOrchestrator, gateway, scheduler, bus
):
    gate = asyncio.Event()

    async def slow_status(params):
        await gate.wait()
        return status_payload("batch-1", 2, 1)

    gateway.script("batch_send_comments", "batch-1")
    gateway.script("get_batch_status", slow_status)
    await orchestrator.submit_batch([make_video(1), make_video(2)], "hello")

    in_flight = asyncio.create_task(scheduler.run_next())
    await asyncio.sleep(0)
    orchestrator.stop_polling()
    gate.set()
    await in_flight

    assert orchestrator.batch_status is not None
    assert orchestrator.is_running is False
    assert scheduler.pending == []
    assert bus.of_type(BatchPollingStopped) == []


@pytest.mark.asyncio
async def test_cancel_failure_still_stops_polling(
    orchestrator: BatchCommentOrchestrator, gateway, scheduler, bus
):
    gateway.script("batch_send_comments", "batch-1")
    gateway.script("cancel_batch", TransportError("cancel_batch", "timeout"))
    await orchestrator.submit_batch([make_video(1)], "hello")

    with pytest.raises(TransportError):
        await orchestrator.cancel_batch()

    assert orchestrator.is_polling is False
    assert orchestrator.phase is BatchPhase.CANCELLED
    assert scheduler.pending == []
    assert bus.of_type(BatchPollingStopped) == [
        BatchPollingStopped(batch_id="batch-1", reason=StopReason.CANCELLED)
    ]


@pytest.mark.asyncio
async def test_cancel_without_batch_makes_no_call(
    orchestrator: BatchCommentOrchestrator, gateway
):
    await orchestrator.cancel_batch()

    assert gateway.calls == []


@pytest.mark.asyncio
async def test_clear_batch_discards_state_even_when_remote_fails(
    orchestrator: BatchCommentOrchestrator, gateway, scheduler, bus
):
    gateway.script("batch_send_comments", "batch-1")
    gateway.script("get_batch_status", status_payload("batch-1", 2, 1))
    gateway.script("clear_batch", TransportError("clear_batch", "connection reset"))
    await orchestrator.submit_batch([make_video(1), make_video(2)], "hello")
    await scheduler.run_next()

    await orchestrator.clear_batch()

    assert gateway.calls_to("clear_batch") == [{"batch_id": "batch-1"}]
    assert orchestrator.current_batch_id is None
    assert orchestrator.batch_status is None
    assert orchestrator.phase is BatchPhase.CLEARED
    assert scheduler.pending == []
    assert bus.of_type(BatchPollingStopped)[-1] == BatchPollingStopped(
        batch_id="batch-1", reason=StopReason.CLEARED
    )


@pytest.mark.asyncio
async def test_clear_without_batch_is_a_no_op(
    orchestrator: BatchCommentOrchestrator, gateway, bus
):
    await orchestrator.clear_batch()

    assert gateway.calls == []
    assert bus.events == []
    assert orchestrator.phase is BatchPhase.IDLE


@pytest.mark.asyncio
async def test_batch_submitted_during_clear_is_kept(
    orchestrator: BatchCommentOrchestrator, gateway, scheduler, bus
):
    gate = asyncio.Event()

    async def slow_clear(params):
        await gate.wait()

    gateway.script("batch_send_comments", "batch-1", "batch-2")
    gateway.script("clear_batch", slow_clear)
    await orchestrator.submit_batch([make_video(1)], "first")

    clearing = asyncio.create_task(orchestrator.clear_batch())
    await asyncio.sleep(0)
    await orchestrator.submit_batch([make_video(2)], "second")
    gate.set()
    await clearing

    assert gateway.calls_to("clear_batch") == [{"batch_id": "batch-1"}]
    assert orchestrator.current_batch_id == "batch-2"
    assert orchestrator.is_polling is True
    assert orchestrator.phase is BatchPhase.POLLING
    assert len(scheduler.pending) == 1
    assert [
        e for e in bus.of_type(BatchPollingStopped) if e.reason is StopReason.CLEARED
    ] == []

@pytest.mark.asyncio
async def test_force_reset_clears_everything_without_remote_calls(
    orchestrator: BatchCommentOrchestrator, gateway, scheduler, bus
):
    gateway.script("batch_send_comments", "batch-1")
    gateway.script("get_batch_status", poll_failure())
    await orchestrator.submit_batch([make_video(1)], "hello")
    await scheduler.run_next()
    events_before = len(bus.events)

    orchestrator.force_reset()

    assert orchestrator.current_batch_id is None
    assert orchestrator.batch_status is None
    assert orchestrator.is_polling is False
    assert orchestrator.is_loading is False
    assert orchestrator.consecutive_poll_failures == 0
    assert orchestrator.phase is BatchPhase.IDLE
    assert scheduler.pending == []
    assert [op for op, _ in gateway.calls] == ["batch_send_comments", "get_batch_status"]
    assert len(bus.events) == events_before


@pytest.mark.asyncio
async def test_progress_is_clamped_when_backend_overreports(
    orchestrator: BatchCommentOrchestrator, gateway, scheduler
):
    gateway.script("batch_send_comments", "batch-1")
    gateway.script("get_batch_status", {"batch_id": "batch-1", "total": 2, "completed": 5})
    await orchestrator.submit_batch([make_video(1), make_video(2)], "hello")

    assert orchestrator.progress_percent == 0

    await scheduler.run_next()

    assert orchestrator.progress_percent == 100
    assert orchestrator.is_completed is True
    assert orchestrator.is_polling is False


@pytest.mark.asyncio
async def test_send_single_comment(orchestrator: BatchCommentOrchestrator, gateway):
    gateway.script("send_comment", {"success": True, "rpid": 42})

    result = await orchestrator.send_comment(make_video(7), "nice")

    assert result.success is True
    assert result.rpid == 42
    assert gateway.calls_to("send_comment") == [
        {"bvid": "BV7", "aid": 1007, "content": "nice"}
    ]
    assert orchestrator.is_loading is False


@pytest.mark.asyncio
async def test_comment_interval_falls_back_to_default(
    orchestrator: BatchCommentOrchestrator, gateway
):
    gateway.script("get_comment_interval", TransportError("get_comment_interval", "down"))

    assert await orchestrator.fetch_comment_interval() == DEFAULT_COMMENT_INTERVAL

    gateway.responses.clear()
    gateway.script("get_comment_interval", 8)
    assert await orchestrator.fetch_comment_interval() == 8


# Subscriber failures


def broken_subscriber(event):
    raise RuntimeError("view crashed")


@pytest.mark.asyncio
async def test_failing_status_subscriber_does_not_stop_polling(
    orchestrator: BatchCommentOrchestrator, gateway, scheduler, bus
):
    gateway.script("batch_send_comments", "batch-1")
    gateway.script("get_batch_status", status_payload("batch-1", 2, 1))
    bus.subscribe_to_event(BatchStatusUpdated, FunctionHandler(broken_subscriber))
    await orchestrator.submit_batch([make_video(1), make_video(2)], "hello")

    await scheduler.run_next()

    assert orchestrator.batch_status is not None
    assert orchestrator.is_polling is True
    assert [h.delay for h in scheduler.pending] == [1.0]


@pytest.mark.asyncio
async def test_failing_stop_subscriber_still_finishes_batch(
    orchestrator: BatchCommentOrchestrator, gateway, scheduler, bus
):
    gateway.script("batch_send_comments", "batch-1")
    gateway.script("get_batch_status", status_payload("batch-1", 1, 1))
    bus.subscribe_to_event(BatchPollingStopped, FunctionHandler(broken_subscriber))
    await orchestrator.submit_batch([make_video(1)], "hello")

    await scheduler.run_next()

    assert orchestrator.is_polling is False
    assert orchestrator.phase is BatchPhase.COMPLETED
    assert scheduler.pending == []
    assert bus.of_type(BatchPollingStopped) == [
        BatchPollingStopped(batch_id="batch-1", reason=StopReason.COMPLETED)
    ]
