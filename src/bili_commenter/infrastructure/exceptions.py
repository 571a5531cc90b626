class InfrastructureError(Exception):
    """인프라스트럭처 계층에서 발생하는 모든 예외의 기반 클래스입니다."""
    pass


class GatewayError(InfrastructureError):
    """원격 작업 호출 실패의 기반 클래스입니다."""

    def __init__(self, operation: str, message: str):
        super().__init__(message)
        self.operation = operation
        self.message = message

    @property
    def user_message(self) -> str:
        return self.message


class TransportError(GatewayError):
    """백엔드에 도달하지 못했거나 응답을 해석할 수 없을 때 발생하는 예외입니다."""
    pass


# 플랫폼이 돌려주는 에러 코드별 사용자 안내 문구
_USER_MESSAGES: dict[int, str] = {
    -101: "로그인되어 있지 않습니다",
    -111: "CSRF 검증에 실패했습니다",
    -400: "잘못된 요청입니다",
    -404: "동영상이 존재하지 않습니다",
    12002: "댓글에 금칙어가 포함되어 있습니다",
    12009: "댓글을 너무 자주 보내고 있습니다",
    12015: "인증 코드 입력이 필요합니다",
    12016: "계정에 이상이 있어 인증 후 다시 시도해야 합니다",
    12025: "댓글 기능이 닫힌 동영상입니다",
}


class ApplicationError(GatewayError):
    """백엔드가 요청을 거부했을 때 발생하는 예외입니다."""

    def __init__(self, operation: str, message: str, code: int | None = None):
        super().__init__(operation, message)
        self.code = code

    @property
    def user_message(self) -> str:
        if self.code is None:
            return self.message
        known = _USER_MESSAGES.get(self.code)
        if known:
            return known
        return f"error {self.code}: {self.message}"
