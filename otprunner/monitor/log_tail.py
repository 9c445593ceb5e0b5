"""LogTail — bounded window over a supervised process's output.

Keeps only the most recent lines of engine output, either fed from a live
stream (``observe``) or by re-reading a log file (``refresh_from_file``),
and answers the substring queries supervisors use for readiness and
failure detection.

Patterns registered with ``watch`` are remembered once seen, so a marker
stays visible even after the line carrying it has been evicted from the
window.
"""

from __future__ import annotations

import asyncio
import collections
import re
from collections.abc import Iterable
from pathlib import Path

# Java log prefix, e.g. "22:10:49.222 INFO (Graph.java:731) "
_JAVA_PREFIX = re.compile(r"^\d\d:\d\d:.*\(.*\)\s*")


class LogTail:
    """Fixed-capacity ring buffer of log lines.

    Parameters
    ----------
    capacity:
        Number of lines retained; the oldest line is evicted on overflow.
    """

    def __init__(self, capacity: int = 100) -> None:
        self._lines: collections.deque[str] = collections.deque(maxlen=capacity)
        self._watched: set[str] = set()
        self._seen: set[str] = set()

    def __len__(self) -> int:
        return len(self._lines)

    @property
    def capacity(self) -> int:
        return self._lines.maxlen or 0

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    def watch(self, patterns: Iterable[str]) -> None:
        """Remember *patterns* whenever they appear in observed output."""
        self._watched.update(patterns)
        self._scan("\n".join(self._lines))

    # ------------------------------------------------------------------
    # Feeding
    # ------------------------------------------------------------------

    def observe(self, chunk: str | bytes) -> None:
        """Append the lines of one output chunk."""
        if isinstance(chunk, bytes):
            chunk = chunk.decode("utf-8", errors="replace")
        text = chunk.strip()
        if not text:
            return
        self._scan(text)
        for line in text.split("\n"):
            self._lines.append(line.rstrip("\r"))

    def replace(self, text: str) -> None:
        """Reset the window to the last lines of *text*."""
        self._scan(text)
        self._lines.clear()
        stripped = text.strip()
        if stripped:
            self._lines.extend(line.rstrip("\r") for line in stripped.split("\n"))

    async def refresh_from_file(self, path: Path) -> str:
        """Re-read *path* into the window and return its full contents.

        A missing file reads as empty; the engine may not have created it
        yet.
        """
        text = await asyncio.to_thread(_read_text, Path(path))
        self.replace(text)
        return text

    def _scan(self, text: str) -> None:
        for pattern in self._watched - self._seen:
            if pattern in text:
                self._seen.add(pattern)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def latest_trimmed(self, max_len: int = 60) -> str:
        """Most recent line without its timestamp/class prefix.

        Returns ``""`` until at least two lines have been retained.
        """
        if len(self._lines) < 2:
            return ""
        return _JAVA_PREFIX.sub("", self._lines[-1])[:max_len]

    def contains(self, pattern: str) -> bool:
        if pattern in self._seen:
            return True
        return any(pattern in line for line in self._lines)

    def contains_any(self, patterns: Iterable[str]) -> bool:
        return any(self.contains(p) for p in patterns)

    def contains_all(self, patterns: Iterable[str]) -> bool:
        return all(self.contains(p) for p in patterns)

    def dump(self) -> str:
        """The retained window joined by newlines."""
        return "\n".join(self._lines)


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return ""
