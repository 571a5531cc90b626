from __future__ import annotations

import asyncio
from enum import Enum
from typing import Final

from loguru import logger

from bili_commenter.application.operations import RemoteOperations
from bili_commenter.domain.events import LoginStatusChanged, UserIdentityChanged
from bili_commenter.domain.message_bus import MessageBus
from bili_commenter.domain.model import (
    LoginPollOutcome,
    LoginStatus,
    QrCredential,
    UserIdentity,
)
from bili_commenter.infrastructure.exceptions import GatewayError

SCAN_PROMPT: Final = "Bilibili 앱으로 QR 코드를 스캔해 주세요"


class LoginPhase(Enum):
    IDLE = "idle"
    QR_ISSUED = "qr-issued"
    POLLING = "polling"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    ERROR = "error"


_TERMINAL_PHASES: Final = {
    LoginStatus.CONFIRMED: LoginPhase.CONFIRMED,
    LoginStatus.EXPIRED: LoginPhase.EXPIRED,
    LoginStatus.ERROR: LoginPhase.ERROR,
}


class LoginSession:
    """QR 로그인 상태 기계.

    QR 발급, 확인 상태 폴링, 사용자 정보 갱신을 담당합니다.
    폴링 주기는 호출자(`LoginPollDriver` 등)가 결정합니다.
    """

    def __init__(self, operations: RemoteOperations, bus: MessageBus):
        self.operations: Final = operations
        self.bus: Final = bus

        self.user: UserIdentity | None = None
        self.qr_code: QrCredential | None = None
        self.status: LoginStatus = LoginStatus.WAITING
        self.message: str = ""
        self.phase: LoginPhase = LoginPhase.IDLE
        self.is_loading: bool = False
        self.identity_refresh: asyncio.Task[UserIdentity | None] | None = None
        self._identity_generation = 0

    @property
    def is_logged_in(self) -> bool:
        return self.user is not None and self.user.is_login

    async def fetch_user_info(self) -> UserIdentity | None:
        """사용자 정보를 가져옵니다. 실패하면 정보를 지우고 None을 반환합니다.

        조회 중 로그아웃이나 새 QR 발급이 있었다면 결과를 버리고 None을 반환합니다.
        """
        generation = self._identity_generation
        self.is_loading = True
        try:
            user = await self.operations.get_user_info()
        except GatewayError as e:
            logger.warning(f"Failed to fetch user info: {e.user_message}")
            user = None
        finally:
            self.is_loading = False

        if generation != self._identity_generation:
            logger.debug("Session changed while fetching user info. Ignoring stale result.")
            return None

        await self._set_user(user)
        return user

    async def request_qr(self) -> QrCredential:
        """새 로그인 QR 코드를 발급받습니다.

        Raises:
            GatewayError: 발급에 실패한 경우. 상태는 ERROR가 됩니다.
        """
        self._cancel_identity_refresh()
        self.qr_code = None
        self.is_loading = True
        await self._set_status(LoginStatus.WAITING, SCAN_PROMPT)
        try:
            qr_code = await self.operations.get_login_qrcode()
        except GatewayError as e:
            logger.error(f"Failed to get login QR code: {e.user_message}")
            self.phase = LoginPhase.ERROR
            await self._set_status(LoginStatus.ERROR, e.user_message)
            raise
        finally:
            self.is_loading = False

        self.qr_code = qr_code
        self.phase = LoginPhase.QR_ISSUED
        logger.info("Login QR code issued.")
        return qr_code

    async def poll_once(self) -> LoginPollOutcome | None:
        """QR 확인 상태를 한 번 조회합니다.

        QR 코드가 없으면 아무것도 하지 않습니다. CONFIRMED가 되면 사용자 정보 갱신을
        별도 태스크(`identity_refresh`)로 띄우고 그 완료를 기다리지 않습니다.

        Raises:
            GatewayError: 조회에 실패한 경우. 상태는 ERROR가 됩니다.
        """
        qr_code = self.qr_code
        if qr_code is None:
            logger.debug("No QR code issued. Skipping login poll.")
            return None

        self.phase = LoginPhase.POLLING
        try:
            outcome = await self.operations.poll_login_status(qr_code.qrcode_key)
        except GatewayError as e:
            logger.warning(f"Login status poll failed: {e.user_message}")
            if self.qr_code is qr_code:
                self.phase = LoginPhase.ERROR
                await self._set_status(LoginStatus.ERROR, e.user_message)
            raise

        if self.qr_code is not qr_code:
            logger.debug("QR code changed while polling. Ignoring stale result.")
            return outcome

        self.phase = _TERMINAL_PHASES.get(outcome.status, LoginPhase.POLLING)
        await self._set_status(outcome.status, outcome.message)

        if outcome.status is LoginStatus.CONFIRMED:
            logger.info("QR login confirmed. Refreshing user info.")
            self.identity_refresh = asyncio.create_task(self.fetch_user_info())

        return outcome

    async def logout(self) -> None:
        """로그아웃합니다. 원격 호출이 실패하면 로컬 상태는 그대로 둡니다."""
        try:
            await self.operations.logout()
        except GatewayError as e:
            logger.error(f"Logout failed: {e.user_message}")
            raise

        self._cancel_identity_refresh()
        self.qr_code = None
        self.phase = LoginPhase.IDLE
        await self._set_status(LoginStatus.WAITING, "")
        await self._set_user(None)
        logger.info("Logged out.")

    async def check_validity(self) -> bool:
        """로그인이 아직 유효한지 확인합니다. 예외를 던지지 않습니다."""
        try:
            is_valid = await self.operations.check_login_valid()
        except Exception:
            logger.exception("Login validity check failed. Treating as logged out.")
            is_valid = False

        if not is_valid:
            await self._set_user(None)
        return is_valid

    def _cancel_identity_refresh(self) -> None:
        self._identity_generation += 1
        if self.identity_refresh is not None and not self.identity_refresh.done():
            self.identity_refresh.cancel()
        self.identity_refresh = None

    async def _set_status(self, status: LoginStatus, message: str) -> None:
        if status is self.status and message == self.message:
            return
        self.status = status
        self.message = message
        await self.bus.handle(LoginStatusChanged(status=status, message=message))

    async def _set_user(self, user: UserIdentity | None) -> None:
        if user == self.user:
            return
        self.user = user
        await self.bus.handle(UserIdentityChanged(user=user))
