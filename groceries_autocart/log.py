from __future__ import annotations

import json
from dataclasses import dataclass, asdict
from typing import Callable

LEVELS = ("info", "warn", "error", "done")


@dataclass(frozen=True)
class LogLine:
    level: str
    message: str

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)


class LogSink:
    """Ordered, append-only progress log for a single run.

    One instance is created per run and handed to everything that reports
    progress. Lines are echoed to stdout as they arrive unless ``echo`` is
    off, and forwarded to ``on_line`` when given (e.g. a JSON-lines stream).
    """

    def __init__(self, *, echo: bool = True, on_line: Callable[[LogLine], None] | None = None):
        self._lines: list[LogLine] = []
        self._echo = echo
        self._on_line = on_line

    def log(self, level: str, message: str) -> None:
        if level not in LEVELS:
            raise ValueError(f"Unknown log level: {level}")
        line = LogLine(level=level, message=message)
        self._lines.append(line)
        if self._echo:
            print(f"[{level.upper()}] {message}")
        if self._on_line is not None:
            self._on_line(line)

    def info(self, message: str) -> None:
        self.log("info", message)

    def warn(self, message: str) -> None:
        self.log("warn", message)

    def error(self, message: str) -> None:
        self.log("error", message)

    def done(self, message: str) -> None:
        self.log("done", message)

    @property
    def lines(self) -> tuple[LogLine, ...]:
        return tuple(self._lines)

    def messages(self, level: str | None = None) -> list[str]:
        return [ln.message for ln in self._lines if level is None or ln.level == level]
