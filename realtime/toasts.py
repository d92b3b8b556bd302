from typing import Protocol
from loguru import logger


class Toaster(Protocol):
    def __call__(
        self,
        title: str,
        description: str,
        duration_ms: int | None = None,
        variant: str = "default",
    ) -> None: ...


class LoggingToaster:
    """Toast sink for headless runs: every toast becomes a log line."""

    def __call__(
        self,
        title: str,
        description: str,
        duration_ms: int | None = None,
        variant: str = "default",
    ) -> None:
        logger.info(f"toast variant={variant} duration_ms={duration_ms} title='{title}' description='{description}'")


class RecordingToaster:
    """Keeps every toast in memory; the terminal dashboard reads from it."""

    def __init__(self):
        self.toasts: list[dict] = []

    def __call__(
        self,
        title: str,
        description: str,
        duration_ms: int | None = None,
        variant: str = "default",
    ) -> None:
        self.toasts.append(
            {"title": title, "description": description, "duration_ms": duration_ms, "variant": variant}
        )
