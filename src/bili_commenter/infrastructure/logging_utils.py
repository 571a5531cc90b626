"""로깅 설정 및 트레이싱 유틸리티"""

import functools
import inspect
import sys
import time
from contextlib import contextmanager
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from bili_commenter.infrastructure.config import Settings

T = TypeVar("T")

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level> | <yellow>{extra}</yellow>"
)


def configure_logging(settings: Settings) -> None:
    """콘솔과 파일 싱크를 설정합니다.

    파일 싱크는 JSON 직렬화되어 `settings.log_file_path`에 기록됩니다.
    """
    logger.remove()
    if sys.stderr:
        logger.add(sys.stderr, level=settings.log_level, format=CONSOLE_FORMAT)

    settings.log_file_path.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        settings.log_file_path,
        level=settings.log_level,
        rotation="10 MB",
        retention="7 days",
        encoding="utf-8",
        backtrace=True,
        diagnose=True,
        serialize=True,
    )


def _signature(args: tuple, kwargs: dict, skip_self: bool) -> str:
    positional = args[1:] if skip_self and args else args
    args_repr = [repr(a) for a in positional]
    kwargs_repr = [f"{k}={v!r}" for k, v in kwargs.items()]
    return ", ".join(args_repr + kwargs_repr)


def log_function_call(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """코루틴 호출의 시작과 종료를 소요 시간과 함께 기록합니다."""
    if not inspect.iscoroutinefunction(func):
        raise TypeError(f"log_function_call expects a coroutine function: {func!r}")

    func_name = f"{func.__module__}.{func.__qualname__}"
    # 메서드면 첫 인자(self)는 출력하지 않음
    skip_self = "." in func.__qualname__

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> T:
        logger.debug(f"→ {func_name}({_signature(args, kwargs, skip_self)})")
        started = time.perf_counter()
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            logger.warning(
                f"✗ {func_name} failed after {time.perf_counter() - started:.3f}s: "
                f"{e.__class__.__name__}: {e}"
            )
            raise
        logger.debug(f"← {func_name} completed in {time.perf_counter() - started:.3f}s")
        return result

    return wrapper


@contextmanager
def log_step(step_name: str, **extra_context):
    """단계별 작업을 로깅하는 컨텍스트 매니저

    Usage:
        with log_step("배치 댓글 제출", video_count=3):
            ...
    """
    logger.info(f"▶ {step_name}", **extra_context)
    start_time = time.perf_counter()

    try:
        yield
    except Exception as e:
        elapsed = time.perf_counter() - start_time
        logger.error(
            f"✗ {step_name} failed after {elapsed:.3f}s: {e.__class__.__name__}: {e}",
            duration=elapsed,
            error_type=e.__class__.__name__,
            **extra_context,
        )
        raise
    elapsed = time.perf_counter() - start_time
    logger.info(f"✓ {step_name} completed in {elapsed:.3f}s", duration=elapsed, **extra_context)
