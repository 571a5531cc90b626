"""httpx 기반 원격 작업 게이트웨이"""
from __future__ import annotations

from typing import Any, override

import httpx
from loguru import logger

from bili_commenter.domain.gateway import Gateway
from bili_commenter.infrastructure.exceptions import ApplicationError, TransportError
from bili_commenter.infrastructure.logging_utils import log_function_call


class HttpGateway(Gateway):
    """백엔드 서비스의 `/api/{operation}` 엔드포인트를 호출합니다.

    응답은 `{"ok": true, "data": ...}` 또는
    `{"ok": false, "error": {"code": ..., "message": ...}}` 형태의 봉투입니다.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            transport=transport,
        )
        logger.info(f"HttpGateway initialized: base_url={base_url}, timeout={timeout}")

    @override
    @log_function_call
    async def call(self, operation: str, params: dict[str, Any] | None = None) -> Any:
        with logger.contextualize(operation=operation):
            try:
                resp = await self._client.post(f"/api/{operation}", json=params or {})
            except httpx.HTTPError as e:
                raise TransportError(
                    operation, f"백엔드에 연결할 수 없습니다: {e}"
                ) from e
            return self._unwrap(operation, resp)

    @staticmethod
    def _unwrap(operation: str, resp: httpx.Response) -> Any:
        try:
            body = resp.json()
        except ValueError as e:
            raise TransportError(
                operation, f"응답을 해석할 수 없습니다 (HTTP {resp.status_code})"
            ) from e

        if not isinstance(body, dict) or "ok" not in body:
            raise TransportError(
                operation, f"알 수 없는 응답 형식입니다 (HTTP {resp.status_code})"
            )

        if body["ok"]:
            return body.get("data")

        error = body.get("error") or {}
        logger.debug(f"Backend rejected '{operation}': {error}")
        raise ApplicationError(
            operation,
            error.get("message", "알 수 없는 오류"),
            code=error.get("code"),
        )

    @override
    async def aclose(self) -> None:
        await self._client.aclose()
        logger.debug("HttpGateway closed.")
