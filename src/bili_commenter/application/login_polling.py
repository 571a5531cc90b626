from __future__ import annotations

from typing import Final

from loguru import logger

from bili_commenter.application.login import LoginSession
from bili_commenter.application.scheduling import Scheduler, SingleShotTimer
from bili_commenter.infrastructure.exceptions import GatewayError


class LoginPollDriver:
    """`LoginSession.poll_once()`를 주기적으로 호출하는 드라이버.

    상태가 종료 상태(confirmed, expired, error)가 되거나 폴링이 실패하면 멈춥니다.
    """

    def __init__(self, session: LoginSession, scheduler: Scheduler, interval: float = 2.0):
        self.session: Final = session
        self.interval = interval
        self._timer = SingleShotTimer(scheduler, "login-poll")
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        self.stop()
        self._active = True
        self._timer.start(0, self._tick)
        logger.debug("Login polling started.")

    def stop(self) -> None:
        if self._active:
            logger.debug("Login polling stopped.")
        self._active = False
        self._timer.cancel()

    async def _tick(self) -> None:
        if not self._active:
            return

        try:
            outcome = await self.session.poll_once()
        except GatewayError:
            self._active = False
            return
        except Exception:
            logger.exception("Login poll failed unexpectedly. Stopping login polling.")
            self._active = False
            return

        if not self._active:
            return
        if outcome is None or self.session.status.is_terminal:
            logger.info(f"Login polling finished with status '{self.session.status.value}'.")
            self._active = False
            return

        self._timer.start(self.interval, self._tick)
