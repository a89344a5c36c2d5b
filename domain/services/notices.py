from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class NoticeLevel(StrEnum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    level: NoticeLevel
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"level": self.level.value, "message": self.message}


class NoticeLog:
    """Transient operator notifications, drained by whatever surface shows them."""

    def __init__(self) -> None:
        self._items: list[Notice] = []

    def push(self, level: NoticeLevel, message: str) -> None:
        self._items.append(Notice(level, message))

    def peek(self) -> list[Notice]:
        return list(self._items)

    def drain(self) -> list[Notice]:
        items, self._items = self._items, []
        return items
