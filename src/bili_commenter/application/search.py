from __future__ import annotations

import functools
import math
from typing import Final

from loguru import logger

from bili_commenter.application.operations import RemoteOperations
from bili_commenter.application.scheduling import Scheduler, SingleShotTimer
from bili_commenter.domain.events import SearchResultsUpdated
from bili_commenter.domain.message_bus import MessageBus
from bili_commenter.domain.model import SearchOrder, VideoRef
from bili_commenter.infrastructure.exceptions import GatewayError


class SearchController:
    """동영상 검색, 페이지/정렬 상태, 선택 집합을 관리합니다.

    검색이 진행 중일 때 들어온 새 검색은 대기열 없이 건너뜁니다.
    선택 집합은 페이지 이동이나 재검색으로 무효화되지 않으며, 새 키워드로
    검색할 때만 비워집니다.
    """

    def __init__(
        self,
        operations: RemoteOperations,
        bus: MessageBus,
        scheduler: Scheduler,
        page_size: int = 20,
        debounce_delay: float = 0.3,
    ):
        self.operations: Final = operations
        self.bus: Final = bus
        self.debounce_delay = debounce_delay

        self.keyword: str = ""
        self.results: list[VideoRef] = []
        self.page: int = 1
        self.page_size: int = page_size
        self.total: int = 0
        self.order: SearchOrder = SearchOrder.TOTAL_RANK
        self.is_loading: bool = False
        self.selected: set[str] = set()
        self._debounce = SingleShotTimer(scheduler, "search-debounce")

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total / self.page_size)

    @property
    def selected_count(self) -> int:
        return len(self.selected)

    @property
    def selected_videos(self) -> list[VideoRef]:
        """현재 결과 중 선택된 동영상 목록"""
        return [v for v in self.results if v.bvid in self.selected]

    @property
    def debounce_pending(self) -> bool:
        return self._debounce.pending

    async def search(self, keyword: str | None = None) -> None:
        """검색을 실행합니다.

        키워드를 넘기면 페이지를 1로 되돌리고 선택을 비웁니다.

        Raises:
            GatewayError: 검색 호출이 실패한 경우
        """
        if keyword is not None:
            self.keyword = keyword
            self.page = 1
            self.selected.clear()

        if not self.keyword.strip():
            self.results = []
            self.total = 0
            await self.bus.handle(
                SearchResultsUpdated(keyword=self.keyword, page=self.page, total=0)
            )
            return

        if self.is_loading:
            logger.debug("Search already in flight. Skipping duplicate request.")
            return

        self.is_loading = True
        try:
            result = await self.operations.search_videos(
                self.keyword, self.page, self.page_size, self.order
            )
        except GatewayError as e:
            logger.error(f"Search for '{self.keyword}' failed: {e.user_message}")
            raise
        finally:
            self.is_loading = False

        self.results = result.items
        self.total = result.total
        self.page = result.page
        logger.debug(
            f"Search '{self.keyword}' page {self.page}: "
            f"{len(self.results)} items of {self.total}"
        )
        await self.bus.handle(
            SearchResultsUpdated(keyword=self.keyword, page=self.page, total=self.total)
        )

    def search_debounced(self, keyword: str, delay: float | None = None) -> None:
        """디바운스된 검색. 대기 시간 안의 마지막 호출만 실행됩니다."""
        wait = self.debounce_delay if delay is None else delay
        self._debounce.start(wait, functools.partial(self._run_debounced, keyword))

    def cancel_debounce(self) -> None:
        self._debounce.cancel()

    async def _run_debounced(self, keyword: str) -> None:
        try:
            await self.search(keyword)
        except GatewayError:
            # 실패는 search()에서 이미 기록됨
            pass

    async def set_page(self, page: int) -> None:
        self.page = page
        await self.search()

    async def set_order(self, order: SearchOrder) -> None:
        self.order = order
        self.page = 1
        await self.search()

    # --- 선택 ---

    def toggle_select(self, bvid: str) -> None:
        if bvid in self.selected:
            self.selected.discard(bvid)
        else:
            self.selected.add(bvid)

    def select_all(self) -> None:
        """현재 페이지의 모든 결과를 선택합니다."""
        self.selected.update(v.bvid for v in self.results)

    def clear_selection(self) -> None:
        self.selected.clear()

    def is_selected(self, bvid: str) -> bool:
        return bvid in self.selected
