import webbrowser

from PySide6.QtCore import Qt, Slot
from PySide6.QtWidgets import (
    QDialog,
    QDialogButtonBox,
    QHeaderView,
    QLabel,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
)

from bili_commenter.domain.model import BatchStatus, TaskStatus

VIDEO_URL = "https://www.bilibili.com/video/{bvid}"

_STATUS_TEXT = {
    TaskStatus.PENDING: ("대기", Qt.GlobalColor.gray),
    TaskStatus.RUNNING: ("실행 중", Qt.GlobalColor.darkYellow),
    TaskStatus.SUCCESS: ("성공", Qt.GlobalColor.blue),
    TaskStatus.FAILED: ("실패", Qt.GlobalColor.red),
    TaskStatus.CANCELLED: ("취소됨", Qt.GlobalColor.darkGray),
}


class BatchResultsDialog(QDialog):
    """배치 댓글 결과를 모달 대화상자로 표시하는 위젯"""

    def __init__(self, status: BatchStatus, parent=None, stop_note: str | None = None):
        super().__init__(parent)
        self.status = status
        self.setWindowTitle("배치 댓글 결과")
        self.setMinimumSize(800, 400)

        layout = QVBoxLayout(self)

        summary = QLabel(
            f"전체 {status.total}개 중 {status.completed}개 처리 "
            f"(성공 {status.success}, 실패 {status.failed})"
        )
        layout.addWidget(summary)

        if stop_note:
            note_label = QLabel(stop_note)
            note_label.setStyleSheet("color: #c0392b;")
            layout.addWidget(note_label)

        self.results_table = QTableWidget()
        self.results_table.setColumnCount(3)
        self.results_table.setHorizontalHeaderLabels(["동영상", "상태", "오류"])
        self.results_table.horizontalHeader().setSectionResizeMode(
            QHeaderView.ResizeMode.Stretch
        )
        self.results_table.setEditTriggers(QTableWidget.EditTrigger.NoEditTriggers)
        self.results_table.cellDoubleClicked.connect(self.open_video)
        self.populate_results()
        layout.addWidget(self.results_table)

        button_box = QDialogButtonBox(QDialogButtonBox.StandardButton.Ok)
        button_box.accepted.connect(self.accept)
        layout.addWidget(button_box)

    def populate_results(self):
        """배치 상태의 작업 목록으로 테이블을 채웁니다."""
        self.results_table.setRowCount(len(self.status.tasks))
        for row, job in enumerate(self.status.tasks):
            text, color = _STATUS_TEXT[job.status]
            status_item = QTableWidgetItem(text)
            status_item.setForeground(color)

            self.results_table.setItem(row, 0, QTableWidgetItem(job.video.title))
            self.results_table.setItem(row, 1, status_item)
            self.results_table.setItem(row, 2, QTableWidgetItem(job.error_msg or ""))

    @Slot(int, int)
    def open_video(self, row: int, column: int):
        if 0 <= row < len(self.status.tasks):
            webbrowser.open(VIDEO_URL.format(bvid=self.status.tasks[row].video.bvid))
