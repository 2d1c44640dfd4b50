"""Detached side effects.

A ``DetachedTask`` wraps work the caller must never wait on or fail
because of, such as feed access counters. It is handed to FastAPI's
``BackgroundTasks`` (or called directly by the scheduler), runs after the
response is sent, and reports failures only through its own channel: a
warning log plus an optional ``on_error`` callback.
"""
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class DetachedTask:
    """Callable that runs ``func`` and swallows and reports its failures."""

    def __init__(
        self,
        name: str,
        func: Callable[..., Any],
        *args: Any,
        on_error: Callable[[BaseException], None] | None = None,
        **kwargs: Any,
    ):
        self.name = name
        self.func = func
        self.args = args
        self.kwargs = kwargs
        self.on_error = on_error
        self.error: BaseException | None = None

    def __call__(self) -> None:
        try:
            self.func(*self.args, **self.kwargs)
        except Exception as e:
            self.error = e
            logger.warning(f"Detached task {self.name} failed: {e}")
            if self.on_error is not None:
                try:
                    self.on_error(e)
                except Exception as callback_error:
                    logger.warning(
                        f"Error callback for detached task {self.name} failed: {callback_error}"
                    )

    @property
    def failed(self) -> bool:
        return self.error is not None
