from typing import Callable, List

from app.utils.logger import get_logger

logger = get_logger("storage.flag")


class UsabilityFlag:
    """Process-wide "is MongoDB live" switch.

    Written by the connection supervisor, read synchronously by every
    adapter call. ``mark_lost`` is used by the adapter when a database write
    fails; registered callbacks (the supervisor's reconnect scheduler) run
    right after the flip.
    """

    def __init__(self, usable: bool = False) -> None:
        self._usable = usable
        self._on_lost: List[Callable[[str], None]] = []

    @property
    def usable(self) -> bool:
        return self._usable

    def set(self, value: bool, reason: str | None = None) -> None:
        if value != self._usable:
            logger.info(
                f"{'✅' if value else '⚠️'} MongoDB usable={value}"
                + (f" ({reason})" if reason else "")
            )
        self._usable = value

    def on_lost(self, callback: Callable[[str], None]) -> None:
        self._on_lost.append(callback)

    def mark_lost(self, reason: str) -> None:
        was_usable = self._usable
        self.set(False, reason)
        if was_usable:
            for callback in self._on_lost:
                callback(reason)
