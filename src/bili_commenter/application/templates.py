from __future__ import annotations

from typing import Final

from loguru import logger

from bili_commenter.application.operations import RemoteOperations
from bili_commenter.domain.events import TemplatesChanged
from bili_commenter.domain.message_bus import MessageBus
from bili_commenter.domain.model import CommentTemplate
from bili_commenter.infrastructure.exceptions import GatewayError


class TemplateRegistry:
    """원격 댓글 템플릿 목록의 로컬 미러.

    로컬 목록은 원격 호출이 성공한 뒤에만 변경됩니다.
    """

    def __init__(self, operations: RemoteOperations, bus: MessageBus):
        self.operations: Final = operations
        self.bus: Final = bus
        self.templates: list[CommentTemplate] = []
        self.is_loading: bool = False

    def get(self, template_id: str) -> CommentTemplate | None:
        return next((t for t in self.templates if t.id == template_id), None)

    async def fetch_templates(self) -> list[CommentTemplate]:
        self.is_loading = True
        try:
            self.templates = await self.operations.get_templates()
        except GatewayError as e:
            logger.error(f"Failed to load templates: {e.user_message}")
            raise
        finally:
            self.is_loading = False

        logger.debug(f"Loaded {len(self.templates)} templates.")
        await self._notify()
        return self.templates

    async def create_template(self, name: str, content: str) -> CommentTemplate:
        try:
            template = await self.operations.create_template(name, content)
        except GatewayError as e:
            logger.error(f"Failed to create template '{name}': {e.user_message}")
            raise

        self.templates.append(template)
        logger.info(f"Template {template.id} created.")
        await self._notify()
        return template

    async def update_template(
        self, template_id: str, name: str, content: str
    ) -> CommentTemplate:
        try:
            template = await self.operations.update_template(template_id, name, content)
        except GatewayError as e:
            logger.error(f"Failed to update template {template_id}: {e.user_message}")
            raise

        for index, existing in enumerate(self.templates):
            if existing.id == template_id:
                self.templates[index] = template
                break
        logger.info(f"Template {template_id} updated.")
        await self._notify()
        return template

    async def delete_template(self, template_id: str) -> None:
        try:
            await self.operations.delete_template(template_id)
        except GatewayError as e:
            logger.error(f"Failed to delete template {template_id}: {e.user_message}")
            raise

        self.templates = [t for t in self.templates if t.id != template_id]
        logger.info(f"Template {template_id} deleted.")
        await self._notify()

    async def _notify(self) -> None:
        await self.bus.handle(TemplatesChanged(count=len(self.templates)))
