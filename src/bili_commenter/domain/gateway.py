from typing import Any, Protocol


class Gateway(Protocol):
    """백엔드 원격 작업을 호출하는 유일한 경계.

    모든 호출은 실패할 수 있으며 `TransportError` 또는 `ApplicationError`를
    발생시킵니다. 호출 간 순서는 호출자가 직접 await 하지 않는 한 보장되지 않습니다.
    """

    async def call(self, operation: str, params: dict[str, Any] | None = None) -> Any:
        ...

    async def aclose(self) -> None:
        ...
