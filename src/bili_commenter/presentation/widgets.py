import base64

from loguru import logger
from PySide6.QtCore import Qt, Signal
from PySide6.QtGui import QPixmap
from PySide6.QtWidgets import QLabel, QTableWidget, QTableWidgetItem

from bili_commenter.domain.model import VideoRef


class QrCodeLabel(QLabel):
    """base64로 인코딩된 QR 코드 이미지를 표시하는 라벨"""

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.setFixedSize(200, 200)

    def set_image_base64(self, image_base64: str) -> None:
        # data URL 접두사가 붙어 올 수 있음
        if "," in image_base64:
            image_base64 = image_base64.split(",", 1)[1]
        pixmap = QPixmap()
        try:
            loaded = pixmap.loadFromData(base64.b64decode(image_base64))
        except ValueError:
            loaded = False
        if not loaded:
            logger.warning("QR 코드 이미지를 해석할 수 없습니다.")
            self.setText("QR 이미지 없음")
            return
        self.setPixmap(
            pixmap.scaled(
                self.size(),
                Qt.AspectRatioMode.KeepAspectRatio,
                Qt.TransformationMode.SmoothTransformation,
            )
        )


class VideoTableWidget(QTableWidget):
    """체크박스로 선택할 수 있는 검색 결과 테이블"""

    selection_toggled = Signal(str)

    COLUMNS = ["선택", "제목", "작성자", "조회수", "길이"]

    def __init__(self, parent=None):
        super().__init__(0, len(self.COLUMNS), parent)
        self.setHorizontalHeaderLabels(self.COLUMNS)
        self.setEditTriggers(QTableWidget.EditTrigger.NoEditTriggers)
        self.itemChanged.connect(self._on_item_changed)

    def populate(self, videos: list[VideoRef], selected: set[str]) -> None:
        self.blockSignals(True)
        try:
            self.setRowCount(len(videos))
            for row, video in enumerate(videos):
                check_item = QTableWidgetItem()
                check_item.setFlags(
                    Qt.ItemFlag.ItemIsUserCheckable | Qt.ItemFlag.ItemIsEnabled
                )
                check_item.setCheckState(
                    Qt.CheckState.Checked
                    if video.bvid in selected
                    else Qt.CheckState.Unchecked
                )
                check_item.setData(Qt.ItemDataRole.UserRole, video.bvid)

                title_item = QTableWidgetItem(video.title)
                title_item.setToolTip(video.description or video.title)

                self.setItem(row, 0, check_item)
                self.setItem(row, 1, title_item)
                self.setItem(row, 2, QTableWidgetItem(video.author))
                self.setItem(row, 3, QTableWidgetItem(f"{video.play:,}"))
                self.setItem(row, 4, QTableWidgetItem(video.duration))
        finally:
            self.blockSignals(False)

    def _on_item_changed(self, item: QTableWidgetItem) -> None:
        if item.column() != 0:
            return
        bvid = item.data(Qt.ItemDataRole.UserRole)
        if bvid:
            self.selection_toggled.emit(bvid)
