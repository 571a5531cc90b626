from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# --- Enums for Status ---


class LoginStatus(Enum):
    WAITING = "waiting"
    SCANNED = "scanned"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (LoginStatus.CONFIRMED, LoginStatus.EXPIRED, LoginStatus.ERROR)


class TaskStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SearchOrder(Enum):
    TOTAL_RANK = "totalrank"
    CLICK = "click"
    PUBDATE = "pubdate"
    DANMAKU = "dm"
    STOW = "stow"

    @property
    def label(self) -> str:
        return SEARCH_ORDER_LABELS[self]


SEARCH_ORDER_LABELS: dict[SearchOrder, str] = {
    SearchOrder.TOTAL_RANK: "종합 순",
    SearchOrder.CLICK: "조회수 순",
    SearchOrder.PUBDATE: "최신 순",
    SearchOrder.DANMAKU: "탄막 많은 순",
    SearchOrder.STOW: "즐겨찾기 순",
}


# --- Value Objects ---


@dataclass(frozen=True)
class QrCredential:
    """로그인 시도 한 번에 발급되는 QR 코드 정보"""

    url: str
    qrcode_key: str
    image_base64: str

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "QrCredential":
        return QrCredential(
            url=data["url"],
            qrcode_key=data["qrcode_key"],
            image_base64=data.get("image_base64", ""),
        )


@dataclass(frozen=True)
class LoginPollOutcome:
    """QR 로그인 상태 폴링 한 번의 결과"""

    status: LoginStatus
    message: str

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "LoginPollOutcome":
        return LoginPollOutcome(
            status=LoginStatus(data["status"]),
            message=data.get("message", ""),
        )


@dataclass(frozen=True)
class UserIdentity:
    """로그인된 사용자 정보"""

    mid: int
    uname: str
    face: str
    is_login: bool

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "UserIdentity":
        return UserIdentity(
            mid=int(data["mid"]),
            uname=data.get("uname", ""),
            face=data.get("face", ""),
            is_login=bool(data.get("is_login", False)),
        )


@dataclass(frozen=True)
class VideoRef:
    """검색 결과에 나타나는 동영상. bvid가 식별자 역할을 합니다."""

    aid: int
    bvid: str
    title: str
    author: str = ""
    mid: int = 0
    pic: str = ""
    play: int = 0
    danmaku: int = 0
    pubdate: int = 0
    duration: str = ""
    description: str = ""

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "VideoRef":
        return VideoRef(
            aid=int(data["aid"]),
            bvid=data["bvid"],
            title=data.get("title", ""),
            author=data.get("author", ""),
            mid=int(data.get("mid", 0)),
            pic=data.get("pic", ""),
            play=int(data.get("play", 0)),
            danmaku=int(data.get("danmaku", 0)),
            pubdate=int(data.get("pubdate", 0)),
            duration=data.get("duration", ""),
            description=data.get("description", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "aid": self.aid,
            "bvid": self.bvid,
            "title": self.title,
            "author": self.author,
            "mid": self.mid,
            "pic": self.pic,
            "play": self.play,
            "danmaku": self.danmaku,
            "pubdate": self.pubdate,
            "duration": self.duration,
            "description": self.description,
        }


@dataclass(frozen=True)
class SearchResultPage:
    page: int
    page_size: int
    total: int
    items: list[VideoRef]

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "SearchResultPage":
        return SearchResultPage(
            page=int(data.get("page", 1)),
            page_size=int(data.get("page_size", 0)),
            total=int(data.get("total", 0)),
            items=[VideoRef.from_dict(item) for item in data.get("items", [])],
        )


@dataclass(frozen=True)
class CommentResult:
    """단일 댓글 전송 결과"""

    success: bool
    rpid: int | None = None
    error_msg: str | None = None

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "CommentResult":
        return CommentResult(
            success=bool(data.get("success", False)),
            rpid=data.get("rpid"),
            error_msg=data.get("error_msg"),
        )


# --- Entities ---


@dataclass(frozen=True)
class CommentJob:
    """배치 안의 댓글 작업 하나. 상태는 백엔드만 변경합니다."""

    id: str
    video: VideoRef
    content: str
    status: TaskStatus = TaskStatus.PENDING
    error_msg: str | None = None
    created_at: int = 0
    completed_at: int | None = None

    @property
    def is_finished(self) -> bool:
        return self.status in (
            TaskStatus.SUCCESS,
            TaskStatus.FAILED,
            TaskStatus.CANCELLED,
        )

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "CommentJob":
        return CommentJob(
            id=data["id"],
            video=VideoRef.from_dict(data["video"]),
            content=data.get("content", ""),
            status=TaskStatus(data.get("status", TaskStatus.PENDING.value)),
            error_msg=data.get("error_msg"),
            created_at=int(data.get("created_at", 0)),
            completed_at=data.get("completed_at"),
        )


@dataclass(frozen=True)
class BatchStatus:
    """배치 전체의 집계 상태"""

    batch_id: str
    total: int
    completed: int
    success: int = 0
    failed: int = 0
    tasks: list[CommentJob] = field(default_factory=list)

    @property
    def is_finished(self) -> bool:
        return self.completed >= self.total

    @property
    def progress_percent(self) -> int:
        if self.total <= 0:
            return 0
        percent = round(100 * self.completed / self.total)
        return max(0, min(100, percent))

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "BatchStatus":
        return BatchStatus(
            batch_id=data["batch_id"],
            total=int(data.get("total", 0)),
            completed=int(data.get("completed", 0)),
            success=int(data.get("success", 0)),
            failed=int(data.get("failed", 0)),
            tasks=[CommentJob.from_dict(t) for t in data.get("tasks", [])],
        )


@dataclass(frozen=True)
class CommentTemplate:
    id: str
    name: str
    content: str
    created_at: int = 0
    updated_at: int = 0

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "CommentTemplate":
        return CommentTemplate(
            id=data["id"],
            name=data.get("name", ""),
            content=data.get("content", ""),
            created_at=int(data.get("created_at", 0)),
            updated_at=int(data.get("updated_at", 0)),
        )
