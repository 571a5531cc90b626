from __future__ import annotations

import functools
from enum import Enum
from typing import Final

from loguru import logger

from bili_commenter.application.operations import RemoteOperations
from bili_commenter.application.scheduling import Scheduler, SingleShotTimer
from bili_commenter.domain.events import (
    BatchPollingStopped,
    BatchStatusUpdated,
    Event,
    StopReason,
)
from bili_commenter.domain.message_bus import MessageBus
from bili_commenter.domain.model import BatchStatus, CommentResult, VideoRef
from bili_commenter.infrastructure.exceptions import GatewayError
from bili_commenter.infrastructure.logging_utils import log_step

MAX_POLL_FAILURES: Final = 5
DEFAULT_COMMENT_INTERVAL: Final = 5


class BatchPhase(Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    POLLING = "polling"
    STOPPED = "stopped"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    CANCELLED = "cancelled"
    CLEARED = "cleared"


class BatchCommentOrchestrator:
    """배치 댓글 제출과 진행 상태 폴링을 담당합니다.

    폴링 루프는 매 회차가 끝날 때 다음 회차를 예약하는 방식으로 동작하며,
    회차 경계마다 `is_polling`과 현재 배치 ID를 확인합니다. 연속 실패가
    `max_poll_failures`에 도달하면 배치의 실제 진행 여부와 관계없이 폴링을 멈춥니다.
    """

    def __init__(
        self,
        operations: RemoteOperations,
        bus: MessageBus,
        scheduler: Scheduler,
        poll_interval: float = 1.0,
        max_poll_failures: int = MAX_POLL_FAILURES,
    ):
        self.operations: Final = operations
        self.bus: Final = bus
        self.poll_interval = poll_interval
        self.max_poll_failures = max_poll_failures

        self.current_batch_id: str | None = None
        self.batch_status: BatchStatus | None = None
        self.is_polling: bool = False
        self.consecutive_poll_failures: int = 0
        self.is_loading: bool = False
        self.comment_interval: int = DEFAULT_COMMENT_INTERVAL
        self.phase: BatchPhase = BatchPhase.IDLE
        self._timer = SingleShotTimer(scheduler, "batch-poll")

    # --- 파생 상태 ---

    @property
    def is_running(self) -> bool:
        if self.batch_status is None or not self.is_polling:
            return False
        return self.batch_status.completed < self.batch_status.total

    @property
    def progress_percent(self) -> int:
        if self.batch_status is None:
            return 0
        return self.batch_status.progress_percent

    @property
    def is_completed(self) -> bool:
        """완료 수가 전체 수에 도달했는지 여부. 폴링 중단 여부와는 무관합니다."""
        if self.batch_status is None:
            return False
        return self.batch_status.is_finished

    @property
    def breaker_tripped(self) -> bool:
        return self.phase is BatchPhase.ABANDONED

    # --- 단일 댓글 ---

    async def fetch_comment_interval(self) -> int:
        try:
            self.comment_interval = await self.operations.get_comment_interval()
        except GatewayError as e:
            logger.warning(f"Failed to fetch comment interval: {e.user_message}")
        return self.comment_interval

    async def send_comment(self, video: VideoRef, content: str) -> CommentResult:
        self.is_loading = True
        try:
            result = await self.operations.send_comment(video, content)
        except GatewayError as e:
            logger.error(f"Failed to send comment to {video.bvid}: {e.user_message}")
            raise
        finally:
            self.is_loading = False

        if result.success:
            logger.info(f"Comment sent to {video.bvid} (rpid={result.rpid}).")
        else:
            logger.warning(f"Comment to {video.bvid} rejected: {result.error_msg}")
        return result

    # --- 배치 ---

    async def submit_batch(self, videos: list[VideoRef], content: str) -> str:
        """새 배치를 제출하고 즉시 폴링을 시작합니다.

        이전 배치는 완료 여부와 관계없이 로컬에서 폐기됩니다.

        Raises:
            GatewayError: 제출에 실패한 경우. 등록되는 배치는 없습니다.
        """
        previous_batch_id = self.current_batch_id
        was_polling = self.is_polling
        self.stop_polling()
        self.current_batch_id = None
        self.batch_status = None
        self.consecutive_poll_failures = 0
        if previous_batch_id and was_polling:
            await self._publish(
                BatchPollingStopped(
                    batch_id=previous_batch_id, reason=StopReason.SUPERSEDED
                )
            )

        self.phase = BatchPhase.SUBMITTING
        self.is_loading = True
        try:
            with log_step("배치 댓글 제출", video_count=len(videos)):
                batch_id = await self.operations.batch_send_comments(videos, content)
        except Exception:
            self.phase = BatchPhase.IDLE
            raise
        finally:
            self.is_loading = False

        self.current_batch_id = batch_id
        logger.info(f"Batch {batch_id} submitted with {len(videos)} videos.")
        self.start_polling()
        return batch_id

    async def fetch_batch_status(self) -> BatchStatus | None:
        """현재 배치의 상태를 한 번 조회합니다.

        실패는 예외로 전파되지 않고 연속 실패 횟수만 증가시킵니다.
        조회 중 배치가 바뀌었다면 결과를 버립니다.
        """
        batch_id = self.current_batch_id
        if not batch_id:
            return None

        try:
            status = await self.operations.get_batch_status(batch_id)
        except Exception as e:
            if batch_id == self.current_batch_id:
                self.consecutive_poll_failures += 1
            logger.warning(
                f"Batch status poll failed "
                f"({self.consecutive_poll_failures}/{self.max_poll_failures}): {e}"
            )
            return None

        if batch_id != self.current_batch_id:
            logger.debug(f"Discarding status of stale batch {batch_id}.")
            return None

        self.batch_status = status
        self.consecutive_poll_failures = 0
        await self._publish(BatchStatusUpdated(batch_id=batch_id, status=status))
        return status

    def start_polling(self) -> None:
        self.stop_polling()
        if not self.current_batch_id:
            logger.debug("No active batch. Polling not started.")
            return

        self.is_polling = True
        self.consecutive_poll_failures = 0
        self.phase = BatchPhase.POLLING
        self._timer.start(0, functools.partial(self._poll, self.current_batch_id))

    def stop_polling(self) -> None:
        self.is_polling = False
        self._timer.cancel()
        if self.phase is BatchPhase.POLLING:
            self.phase = BatchPhase.STOPPED

    async def _poll(self, batch_id: str) -> None:
        if not self.is_polling or batch_id != self.current_batch_id:
            return

        with logger.contextualize(batch_id=batch_id):
            await self.fetch_batch_status()

            if not self.is_polling or batch_id != self.current_batch_id:
                logger.debug("Polling stopped while a status request was in flight.")
                return

            if self.consecutive_poll_failures >= self.max_poll_failures:
                logger.error(
                    f"Batch status polling failed {self.consecutive_poll_failures} "
                    "times in a row. Giving up."
                )
                self.stop_polling()
                self.phase = BatchPhase.ABANDONED
                await self._publish(
                    BatchPollingStopped(
                        batch_id=batch_id, reason=StopReason.BREAKER_TRIPPED
                    )
                )
                return

            last_status = self.batch_status
            if last_status is None or last_status.completed < last_status.total:
                self._timer.start(
                    self.poll_interval, functools.partial(self._poll, batch_id)
                )
                return

            self.stop_polling()
            self.phase = BatchPhase.COMPLETED
            logger.info(
                f"Batch finished: success={last_status.success}, "
                f"failed={last_status.failed}, total={last_status.total}"
            )
            await self._publish(
                BatchPollingStopped(batch_id=batch_id, reason=StopReason.COMPLETED)
            )

    async def cancel_batch(self) -> None:
        """원격 취소를 요청하고 로컬 폴링을 멈춥니다.

        취소 요청이 실패해도 폴링은 멈추며 예외는 호출자에게 전파됩니다.
        """
        batch_id = self.current_batch_id
        if not batch_id:
            logger.debug("No active batch to cancel.")
            return

        with logger.contextualize(batch_id=batch_id):
            try:
                await self.operations.cancel_batch(batch_id)
                logger.info("Batch cancellation requested.")
            except GatewayError as e:
                logger.error(f"Failed to cancel batch: {e.user_message}")
                raise
            finally:
                self.stop_polling()
                self.phase = BatchPhase.CANCELLED
                await self._publish(
                    BatchPollingStopped(batch_id=batch_id, reason=StopReason.CANCELLED)
                )

    async def clear_batch(self) -> None:
        """폴링을 멈추고 원격 정리를 시도한 뒤 로컬 배치 상태를 버립니다."""
        self.stop_polling()
        batch_id = self.current_batch_id
        if not batch_id:
            logger.debug("No active batch to clear.")
            return

        try:
            await self.operations.clear_batch(batch_id)
        except Exception as e:
            logger.warning(f"Failed to clear batch {batch_id}: {e}")

        if self.current_batch_id != batch_id:
            logger.debug("A new batch was submitted while clearing. Keeping it.")
            return

        self.current_batch_id = None
        self.batch_status = None
        self.phase = BatchPhase.CLEARED
        await self._publish(
            BatchPollingStopped(batch_id=batch_id, reason=StopReason.CLEARED)
        )

    def force_reset(self) -> None:
        """원격 호출 없이 모든 로컬 배치 상태를 초기화합니다."""
        self.stop_polling()
        self.current_batch_id = None
        self.batch_status = None
        self.is_loading = False
        self.consecutive_poll_failures = 0
        self.phase = BatchPhase.IDLE
        logger.info("Batch state force-reset.")

    async def _publish(self, event: Event) -> None:
        # 구독자 오류로 폴링 루프의 재예약/종료 판단이 건너뛰어지면 안 됨
        try:
            await self.bus.handle(event)
        except Exception:
            logger.exception(f"Subscriber failed while handling {type(event).__name__}.")
