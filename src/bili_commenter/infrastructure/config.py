from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv


def _load_nearest_env() -> None:
    """현재 작업 디렉터리부터 위로 올라가며 가장 가까운 .env를 로드합니다."""
    current = Path.cwd().resolve()
    for candidate in [current, *current.parents]:
        env_file = candidate / ".env"
        if env_file.exists():
            load_dotenv(env_file)
            return


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a number") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _default_data_dir() -> Path:
    return Path.home() / "Downloads" / "bili-commenter"


@dataclass(frozen=True)
class Settings:
    """애플리케이션 설정"""

    backend_url: str = "http://127.0.0.1:8765"
    request_timeout: float = 30.0
    batch_poll_interval: float = 1.0
    batch_max_poll_failures: int = 5
    login_poll_interval: float = 2.0
    search_debounce: float = 0.3
    search_page_size: int = 20
    log_level: str = "DEBUG"
    data_dir: Path = field(default_factory=_default_data_dir)

    @property
    def log_file_path(self) -> Path:
        return self.data_dir / "debug.log"

    @staticmethod
    def from_env(load_env_file: bool = True) -> Settings:
        """환경 변수(및 .env)로부터 설정을 읽어옵니다.

        Raises:
            ValueError: 숫자 설정 값이 올바르지 않은 경우
        """
        if load_env_file:
            _load_nearest_env()

        data_dir = os.getenv("BILI_DATA_DIR")
        return Settings(
            backend_url=os.getenv("BILI_BACKEND_URL", "http://127.0.0.1:8765"),
            request_timeout=_env_float("BILI_REQUEST_TIMEOUT", 30.0),
            batch_poll_interval=_env_float("BILI_BATCH_POLL_INTERVAL", 1.0),
            batch_max_poll_failures=_env_int("BILI_BATCH_MAX_POLL_FAILURES", 5),
            login_poll_interval=_env_float("BILI_LOGIN_POLL_INTERVAL", 2.0),
            search_debounce=_env_float("BILI_SEARCH_DEBOUNCE", 0.3),
            search_page_size=_env_int("BILI_SEARCH_PAGE_SIZE", 20),
            log_level=os.getenv("BILI_LOG_LEVEL", "DEBUG"),
            data_dir=Path(data_dir).expanduser() if data_dir else _default_data_dir(),
        )
