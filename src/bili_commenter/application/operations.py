from __future__ import annotations

from typing import Any, Callable, Final, TypeVar

from bili_commenter.domain.gateway import Gateway
from bili_commenter.domain.model import (
    BatchStatus,
    CommentResult,
    CommentTemplate,
    LoginPollOutcome,
    QrCredential,
    SearchOrder,
    SearchResultPage,
    UserIdentity,
    VideoRef,
)
from bili_commenter.infrastructure.exceptions import TransportError

T = TypeVar("T")


def _parse(operation: str, parser: Callable[[Any], T], data: Any) -> T:
    """응답 변환 실패를 전송 오류로 분류합니다."""
    try:
        return parser(data)
    except (KeyError, TypeError, ValueError) as e:
        raise TransportError(
            operation, f"응답 형식이 올바르지 않습니다: {e.__class__.__name__}: {e}"
        ) from e


def _require_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"expected a boolean, got {type(value).__name__}")
    return value


class RemoteOperations:
    """게이트웨이 위의 타입이 지정된 원격 작업 모음.

    각 메서드는 작업 이름으로 게이트웨이를 호출하고 응답을 도메인 객체로 변환합니다.
    게이트웨이 예외는 그대로 전파됩니다.
    """

    def __init__(self, gateway: Gateway):
        self.gateway: Final = gateway

    # --- 인증 ---

    async def get_user_info(self) -> UserIdentity | None:
        data = await self.gateway.call("get_user_info")
        if not data:
            return None
        return _parse("get_user_info", UserIdentity.from_dict, data)

    async def get_login_qrcode(self) -> QrCredential:
        data = await self.gateway.call("get_login_qrcode")
        return _parse("get_login_qrcode", QrCredential.from_dict, data)

    async def poll_login_status(self, qrcode_key: str) -> LoginPollOutcome:
        data = await self.gateway.call(
            "poll_login_status", {"qrcode_key": qrcode_key}
        )
        return _parse("poll_login_status", LoginPollOutcome.from_dict, data)

    async def logout(self) -> None:
        await self.gateway.call("logout")

    async def check_login_valid(self) -> bool:
        data = await self.gateway.call("check_login_valid")
        return _parse("check_login_valid", _require_bool, data)

    # --- 댓글 ---

    async def get_comment_interval(self) -> int:
        data = await self.gateway.call("get_comment_interval")
        return _parse("get_comment_interval", int, data)

    async def send_comment(self, video: VideoRef, content: str) -> CommentResult:
        data = await self.gateway.call(
            "send_comment",
            {"bvid": video.bvid, "aid": video.aid, "content": content},
        )
        return _parse("send_comment", CommentResult.from_dict, data)

    async def batch_send_comments(self, videos: list[VideoRef], content: str) -> str:
        batch_id = await self.gateway.call(
            "batch_send_comments",
            {"videos": [v.to_dict() for v in videos], "content": content},
        )
        if not batch_id:
            raise TransportError("batch_send_comments", "배치 ID가 비어 있습니다")
        return str(batch_id)

    async def get_batch_status(self, batch_id: str) -> BatchStatus:
        data = await self.gateway.call("get_batch_status", {"batch_id": batch_id})
        return _parse("get_batch_status", BatchStatus.from_dict, data)

    async def cancel_batch(self, batch_id: str) -> None:
        await self.gateway.call("cancel_batch", {"batch_id": batch_id})

    async def clear_batch(self, batch_id: str) -> None:
        await self.gateway.call("clear_batch", {"batch_id": batch_id})

    # --- 검색 ---

    async def search_videos(
        self, keyword: str, page: int, page_size: int, order: SearchOrder
    ) -> SearchResultPage:
        data = await self.gateway.call(
            "search_videos",
            {
                "keyword": keyword,
                "page": page,
                "page_size": page_size,
                "order": order.value,
            },
        )
        return _parse("search_videos", SearchResultPage.from_dict, data)

    # --- 템플릿 ---

    async def get_templates(self) -> list[CommentTemplate]:
        data = await self.gateway.call("get_templates")
        return _parse(
            "get_templates",
            lambda items: [CommentTemplate.from_dict(t) for t in items or []],
            data,
        )

    async def create_template(self, name: str, content: str) -> CommentTemplate:
        data = await self.gateway.call(
            "create_template", {"name": name, "content": content}
        )
        return _parse("create_template", CommentTemplate.from_dict, data)

    async def update_template(
        self, template_id: str, name: str, content: str
    ) -> CommentTemplate:
        data = await self.gateway.call(
            "update_template", {"id": template_id, "name": name, "content": content}
        )
        return _parse("update_template", CommentTemplate.from_dict, data)

    async def delete_template(self, template_id: str) -> None:
        await self.gateway.call("delete_template", {"id": template_id})
