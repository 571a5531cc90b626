import asyncio
import signal
import sys

from loguru import logger
from PySide6.QtWidgets import QApplication, QMessageBox
from qasync import QEventLoop

from bili_commenter.bootstrap import bootstrap
from bili_commenter.infrastructure.config import Settings
from bili_commenter.infrastructure.logging_utils import configure_logging
from bili_commenter.presentation.main_window import MainWindow

settings = Settings.from_env()
configure_logging(settings)


def global_exception_handler(exc_type, exc_value, exc_traceback):
    """전역 예외 처리기"""
    logger.opt(exception=(exc_type, exc_value, exc_traceback)).error(
        "An unexpected error occurred"
    )
    msg_box = QMessageBox()
    msg_box.setIcon(QMessageBox.Icon.Warning)
    msg_box.setText("예상치 못한 오류 발생")
    msg_box.setInformativeText(
        f"자세한 내용은 로그 파일을 확인해주세요: {settings.log_file_path}"
    )
    msg_box.setWindowTitle("오류")
    msg_box.setStandardButtons(QMessageBox.StandardButton.Ok)
    msg_box.exec()
    QApplication.quit()


async def run_app(qt_app: QApplication):
    """애플리케이션을 설정하고 실행합니다."""
    logger.info(f"Application starting. Backend: {settings.backend_url}")

    # 종료 신호를 처리하는 핸들러 설정
    shutdown_event = asyncio.Event()

    def signal_handler():
        logger.info("Shutdown signal received.")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler)

    app = bootstrap(settings)
    try:
        window = MainWindow(app, shutdown_event=shutdown_event)
        window.show()
        await window.load_initial_state()

        # 윈도우가 닫히거나 종료 신호를 받으면 종료
        await shutdown_event.wait()

    finally:
        logger.info("Closing application resources...")
        try:
            await app.shutdown()
        except Exception as e:
            logger.warning(f"Application shutdown error: {e}")

        logger.info("Resources closed. Application shutting down.")
        qt_app.quit()


def main():
    """메인 애플리케이션 진입점"""
    sys.excepthook = global_exception_handler
    try:
        qt_app = QApplication(sys.argv)
        loop = QEventLoop(qt_app)
        asyncio.set_event_loop(loop)
        loop.run_until_complete(run_app(qt_app))
    except (KeyboardInterrupt, SystemExit):
        logger.info("Application interrupted. Exiting.")
    except Exception:
        logger.exception("Critical error during application startup")
        sys.exit(1)


if __name__ == "__main__":
    main()
