from dataclasses import dataclass
from enum import Enum

from bili_commenter.domain.model import (
    BatchStatus,
    LoginStatus,
    UserIdentity,
)


class Event:
    """모든 도메인 이벤트의 기본 클래스 (마커 인터페이스 역할)"""

    pass


class StopReason(Enum):
    COMPLETED = "completed"
    BREAKER_TRIPPED = "breaker_tripped"
    CANCELLED = "cancelled"
    CLEARED = "cleared"
    SUPERSEDED = "superseded"


@dataclass(frozen=True)
class LoginStatusChanged(Event):
    """QR 로그인 상태 또는 메시지가 바뀌었을 때 발생하는 이벤트"""

    status: LoginStatus
    message: str


@dataclass(frozen=True)
class UserIdentityChanged(Event):
    """사용자 정보가 갱신되거나 지워졌을 때 발생하는 이벤트"""

    user: UserIdentity | None


@dataclass(frozen=True)
class BatchStatusUpdated(Event):
    """배치 상태 폴링이 성공했을 때 발생하는 이벤트"""

    batch_id: str
    status: BatchStatus


@dataclass(frozen=True)
class BatchPollingStopped(Event):
    """배치 폴링이 멈췄을 때 발생하는 이벤트"""

    batch_id: str | None
    reason: StopReason


@dataclass(frozen=True)
class SearchResultsUpdated(Event):
    keyword: str
    page: int
    total: int


@dataclass(frozen=True)
class TemplatesChanged(Event):
    count: int
