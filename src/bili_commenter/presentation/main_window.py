import asyncio
import os

from loguru import logger
from PySide6.QtCore import Qt, Slot
from PySide6.QtGui import QCloseEvent
from PySide6.QtWidgets import (
    QComboBox,
    QGroupBox,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMessageBox,
    QProgressBar,
    QPushButton,
    QTextEdit,
    QVBoxLayout,
    QWidget,
)
from qasync import asyncSlot

from bili_commenter.bootstrap import Application
from bili_commenter.domain.events import (
    BatchPollingStopped,
    BatchStatusUpdated,
    LoginStatusChanged,
    SearchResultsUpdated,
    StopReason,
    TemplatesChanged,
    UserIdentityChanged,
)
from bili_commenter.domain.model import LoginStatus, SearchOrder
from bili_commenter.infrastructure.exceptions import GatewayError
from bili_commenter.infrastructure.message_bus import FunctionHandler
from bili_commenter.presentation.results_dialog import BatchResultsDialog
from bili_commenter.presentation.widgets import QrCodeLabel, VideoTableWidget

_STOP_NOTES = {
    StopReason.BREAKER_TRIPPED: "상태 조회가 연속으로 실패해 추적을 중단했습니다. 배치는 아직 진행 중일 수 있습니다.",
    StopReason.CANCELLED: "배치 취소를 요청했습니다.",
}


class MainWindow(QMainWindow):
    def __init__(self, app: Application, shutdown_event: asyncio.Event):
        super().__init__()
        self.app = app
        self.shutdown_event = shutdown_event
        self.results_dialog: BatchResultsDialog | None = None

        self.setWindowTitle("Bili Commenter")
        self.setGeometry(100, 100, 1000, 760)
        self.setStyleSheet(
            """
            QMainWindow { background-color: #f8f9fa; }
            QLabel { font-size: 14px; }
            QPushButton {
                background-color: #00a1d6; color: white; border-radius: 5px;
                padding: 8px; font-size: 14px; font-weight: bold;
            }
            QPushButton:hover { background-color: #0087b4; }
            QPushButton:disabled { background-color: #cccccc; color: #666666; }
            QProgressBar {
                border: 1px solid #bdc3c7; border-radius: 5px; text-align: center;
                font-size: 14px;
            }
            QProgressBar::chunk { background-color: #2ecc71; }
            """
        )

        central_widget = QWidget()
        self.setCentralWidget(central_widget)
        main_layout = QVBoxLayout(central_widget)
        main_layout.setSpacing(12)
        main_layout.setContentsMargins(20, 20, 20, 20)

        main_layout.addWidget(self._build_login_box())
        main_layout.addWidget(self._build_search_box(), stretch=1)
        main_layout.addWidget(self._build_comment_box())

        self._subscribe()
        self.refresh_login()
        self.refresh_batch()

    # --- Layout ---

    def _build_login_box(self) -> QGroupBox:
        box = QGroupBox("로그인")
        layout = QHBoxLayout(box)

        self.user_label = QLabel("로그인되지 않음")
        layout.addWidget(self.user_label)

        self.qr_label = QrCodeLabel()
        self.qr_label.setVisible(False)
        layout.addWidget(self.qr_label)

        self.login_status_label = QLabel("")
        layout.addWidget(self.login_status_label, stretch=1)

        self.login_button = QPushButton("QR 로그인")
        self.login_button.clicked.connect(self.start_login)
        layout.addWidget(self.login_button)

        self.logout_button = QPushButton("로그아웃")
        self.logout_button.clicked.connect(self.logout)
        layout.addWidget(self.logout_button)
        return box

    def _build_search_box(self) -> QGroupBox:
        box = QGroupBox("동영상 검색")
        layout = QVBoxLayout(box)

        query_layout = QHBoxLayout()
        self.keyword_input = QLineEdit()
        self.keyword_input.setPlaceholderText("검색어를 입력하세요")
        self.keyword_input.textChanged.connect(self.app.search.search_debounced)
        query_layout.addWidget(self.keyword_input, stretch=1)

        self.order_combo = QComboBox()
        for order in SearchOrder:
            self.order_combo.addItem(order.label, order)
        self.order_combo.currentIndexChanged.connect(self.change_order)
        query_layout.addWidget(self.order_combo)
        layout.addLayout(query_layout)

        self.video_table = VideoTableWidget()
        self.video_table.horizontalHeader().setSectionResizeMode(
            1, QHeaderView.ResizeMode.Stretch
        )
        self.video_table.selection_toggled.connect(self.toggle_video)
        layout.addWidget(self.video_table)

        pager_layout = QHBoxLayout()
        self.select_all_button = QPushButton("현재 페이지 전체 선택")
        self.select_all_button.clicked.connect(self.select_all)
        pager_layout.addWidget(self.select_all_button)
        self.clear_selection_button = QPushButton("선택 해제")
        self.clear_selection_button.clicked.connect(self.clear_selection)
        pager_layout.addWidget(self.clear_selection_button)
        self.selection_label = QLabel("선택 0개")
        pager_layout.addWidget(self.selection_label, stretch=1)

        self.prev_page_button = QPushButton("이전")
        self.prev_page_button.clicked.connect(lambda: self.go_to_page(-1))
        pager_layout.addWidget(self.prev_page_button)
        self.page_label = QLabel("1 / 0")
        self.page_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        pager_layout.addWidget(self.page_label)
        self.next_page_button = QPushButton("다음")
        self.next_page_button.clicked.connect(lambda: self.go_to_page(1))
        pager_layout.addWidget(self.next_page_button)
        layout.addLayout(pager_layout)
        return box

    def _build_comment_box(self) -> QGroupBox:
        box = QGroupBox("댓글")
        layout = QVBoxLayout(box)

        template_layout = QHBoxLayout()
        template_layout.addWidget(QLabel("템플릿"))
        self.template_combo = QComboBox()
        self.template_combo.currentIndexChanged.connect(self.apply_template)
        template_layout.addWidget(self.template_combo, stretch=1)
        self.save_template_button = QPushButton("현재 내용을 템플릿으로 저장")
        self.save_template_button.clicked.connect(self.save_template)
        template_layout.addWidget(self.save_template_button)
        layout.addLayout(template_layout)

        self.content_input = QTextEdit()
        self.content_input.setPlaceholderText("댓글 내용")
        self.content_input.setFixedHeight(80)
        layout.addWidget(self.content_input)

        self.interval_label = QLabel("")
        layout.addWidget(self.interval_label)

        self.progress_bar = QProgressBar()
        self.progress_bar.setRange(0, 100)
        layout.addWidget(self.progress_bar)
        self.batch_status_label = QLabel("")
        layout.addWidget(self.batch_status_label)

        button_layout = QHBoxLayout()
        self.send_button = QPushButton("선택한 동영상에 댓글 보내기")
        self.send_button.clicked.connect(self.submit_batch)
        button_layout.addWidget(self.send_button)
        self.cancel_button = QPushButton("취소")
        self.cancel_button.clicked.connect(self.cancel_batch)
        button_layout.addWidget(self.cancel_button)
        self.clear_button = QPushButton("정리")
        self.clear_button.clicked.connect(self.clear_batch)
        button_layout.addWidget(self.clear_button)
        self.reset_button = QPushButton("강제 초기화")
        self.reset_button.setStyleSheet(
            "QPushButton { background-color: #6c757d; }"
            "QPushButton:hover { background-color: #5a6268; }"
        )
        self.reset_button.clicked.connect(self.force_reset)
        button_layout.addWidget(self.reset_button)
        layout.addLayout(button_layout)
        return box

    def _subscribe(self) -> None:
        bus = self.app.bus
        bus.subscribe_to_event(LoginStatusChanged, FunctionHandler(lambda _: self.refresh_login()))
        bus.subscribe_to_event(UserIdentityChanged, FunctionHandler(lambda _: self.refresh_login()))
        bus.subscribe_to_event(BatchStatusUpdated, FunctionHandler(lambda _: self.refresh_batch()))
        bus.subscribe_to_event(BatchPollingStopped, FunctionHandler(self.handle_batch_stopped))
        bus.subscribe_to_event(SearchResultsUpdated, FunctionHandler(lambda _: self.refresh_search()))
        bus.subscribe_to_event(TemplatesChanged, FunctionHandler(lambda _: self.refresh_templates()))

    def closeEvent(self, event: QCloseEvent) -> None:
        """창이 닫히면 프로세스를 즉시 종료합니다.

        qasync 워커 스레드 정리 중 발생하는
        "QThread: Destroyed while thread is still running" 오류를 피하기 위함입니다.
        """
        logger.info("Close event received. Terminating process...")
        event.accept()
        os._exit(0)

    # --- Startup ---

    async def load_initial_state(self) -> None:
        await self.app.login.fetch_user_info()
        await self.app.comments.fetch_comment_interval()
        self.interval_label.setText(
            f"배치 댓글은 {self.app.comments.comment_interval}초 간격으로 전송됩니다."
        )
        try:
            await self.app.templates.fetch_templates()
        except GatewayError as e:
            self._warn("템플릿을 불러오지 못했습니다", e)

    # --- Login ---

    def refresh_login(self) -> None:
        login = self.app.login
        if login.is_logged_in and login.user:
            self.user_label.setText(f"{login.user.uname} (UID {login.user.mid})")
            self.qr_label.setVisible(False)
        else:
            self.user_label.setText("로그인되지 않음")
        self.login_status_label.setText(login.message)
        if login.status in (LoginStatus.EXPIRED, LoginStatus.ERROR):
            self.login_status_label.setStyleSheet("color: #c0392b;")
        else:
            self.login_status_label.setStyleSheet("")
        self.login_button.setEnabled(not login.is_logged_in)
        self.logout_button.setEnabled(login.is_logged_in)

    @asyncSlot()
    async def start_login(self):
        logger.info("'QR Login' button clicked.")
        self.app.login_poller.stop()
        try:
            qr_code = await self.app.login.request_qr()
        except GatewayError as e:
            self._warn("QR 코드를 가져오지 못했습니다", e)
            return
        self.qr_label.set_image_base64(qr_code.image_base64)
        self.qr_label.setVisible(True)
        self.app.login_poller.start()

    @asyncSlot()
    async def logout(self):
        self.app.login_poller.stop()
        try:
            await self.app.login.logout()
        except GatewayError as e:
            self._warn("로그아웃하지 못했습니다", e)

    # --- Search ---

    def refresh_search(self) -> None:
        search = self.app.search
        self.video_table.populate(search.results, search.selected)
        self.page_label.setText(f"{search.page} / {search.total_pages}")
        self.prev_page_button.setEnabled(search.page > 1)
        self.next_page_button.setEnabled(search.page < search.total_pages)
        self.refresh_selection()

    def refresh_selection(self) -> None:
        self.selection_label.setText(f"선택 {self.app.search.selected_count}개")

    @Slot(str)
    def toggle_video(self, bvid: str):
        self.app.search.toggle_select(bvid)
        self.refresh_selection()

    @Slot()
    def select_all(self):
        self.app.search.select_all()
        self.refresh_search()

    @Slot()
    def clear_selection(self):
        self.app.search.clear_selection()
        self.refresh_search()

    @asyncSlot(int)
    async def go_to_page(self, delta: int):
        target = self.app.search.page + delta
        if target < 1:
            return
        try:
            await self.app.search.set_page(target)
        except GatewayError as e:
            self._warn("검색하지 못했습니다", e)

    @asyncSlot(int)
    async def change_order(self, index: int):
        order = self.order_combo.itemData(index)
        try:
            await self.app.search.set_order(order)
        except GatewayError as e:
            self._warn("검색하지 못했습니다", e)

    # --- Templates ---

    def refresh_templates(self) -> None:
        self.template_combo.blockSignals(True)
        self.template_combo.clear()
        self.template_combo.addItem("(템플릿 선택)", None)
        for template in self.app.templates.templates:
            self.template_combo.addItem(template.name, template.id)
        self.template_combo.blockSignals(False)

    @Slot(int)
    def apply_template(self, index: int):
        template_id = self.template_combo.itemData(index)
        template = self.app.templates.get(template_id) if template_id else None
        if template:
            self.content_input.setPlainText(template.content)

    @asyncSlot()
    async def save_template(self):
        content = self.content_input.toPlainText().strip()
        if not content:
            return
        name = content[:20]
        try:
            await self.app.templates.create_template(name, content)
        except GatewayError as e:
            self._warn("템플릿을 저장하지 못했습니다", e)

    # --- Batch ---

    def refresh_batch(self) -> None:
        comments = self.app.comments
        status = comments.batch_status
        self.progress_bar.setValue(comments.progress_percent)
        if status is not None:
            self.progress_bar.setFormat(f"{status.completed} / {status.total} 완료")
            self.batch_status_label.setText(
                f"성공 {status.success} · 실패 {status.failed}"
            )
        else:
            self.progress_bar.setFormat("%p%")
            self.batch_status_label.setText("")
        if comments.breaker_tripped:
            self.batch_status_label.setText(_STOP_NOTES[StopReason.BREAKER_TRIPPED])

        self.send_button.setEnabled(not comments.is_running and not comments.is_loading)
        self.cancel_button.setEnabled(comments.is_running)
        self.clear_button.setEnabled(comments.current_batch_id is not None)

    @asyncSlot()
    async def submit_batch(self):
        videos = self.app.search.selected_videos
        content = self.content_input.toPlainText().strip()
        if not videos or not content:
            logger.warning("No selected videos or empty comment content.")
            return

        logger.info(f"Submitting batch comment for {len(videos)} videos.")
        self.send_button.setEnabled(False)
        try:
            await self.app.comments.submit_batch(videos, content)
        except GatewayError as e:
            self._warn("배치 댓글을 시작하지 못했습니다", e)
        self.refresh_batch()

    @asyncSlot()
    async def cancel_batch(self):
        try:
            await self.app.comments.cancel_batch()
        except GatewayError as e:
            self._warn("배치를 취소하지 못했습니다", e)
        self.refresh_batch()

    @asyncSlot()
    async def clear_batch(self):
        await self.app.comments.clear_batch()
        self.refresh_batch()

    @Slot()
    def force_reset(self):
        self.app.comments.force_reset()
        self.refresh_batch()

    def handle_batch_stopped(self, event: BatchPollingStopped) -> None:
        logger.info(f"Batch {event.batch_id} polling stopped: {event.reason.value}")
        self.refresh_batch()
        status = self.app.comments.batch_status
        if status is None or event.reason not in (
            StopReason.COMPLETED,
            StopReason.BREAKER_TRIPPED,
        ):
            return
        self.results_dialog = BatchResultsDialog(
            status, self, stop_note=_STOP_NOTES.get(event.reason)
        )
        self.results_dialog.open()

    def _warn(self, title: str, error: GatewayError) -> None:
        QMessageBox.warning(self, "오류", f"{title}\n{error.user_message}")
