import logging
import os
from pathlib import Path
from typing import List, Optional

from ..command.interfaces import ILogReader
from ..command.models import LogFileDescriptor, LogKind

logger = logging.getLogger(__name__)

_BLOCK_SIZE = 8192

# Fixed listing order: error log first, then out log.
DESCRIPTOR_ORDER = (LogKind.ERROR, LogKind.OUT)


def _is_safe_name(name: str) -> bool:
    if not name or name in (".", ".."):
        return False
    return not any(sep in name for sep in ("/", "\\", os.sep, "\x00"))


def read_tail_bytes(path: Path, max_lines: int, block_size: int = _BLOCK_SIZE) -> bytes:
    """
    Read the last ``max_lines`` lines of ``path`` by scanning backwards from
    the end, so only the trailing region of large files is ever read.
    """
    with open(path, "rb") as f:
        f.seek(0, os.SEEK_END)
        position = f.tell()
        if position == 0:
            return b""

        f.seek(position - 1)
        # A final newline terminates the last line and does not start a new one.
        newline_target = max_lines + (1 if f.read(1) == b"\n" else 0)

        blocks: List[bytes] = []
        newlines = 0
        while position > 0 and newlines < newline_target:
            size = min(block_size, position)
            position -= size
            f.seek(position)
            block = f.read(size)
            blocks.append(block)
            newlines += block.count(b"\n")

    data = b"".join(reversed(blocks))
    suffix = b""
    if data.endswith(b"\n"):
        data, suffix = data[:-1], b"\n"
    # Split on "\n" only; npm progress output is full of bare "\r".
    return b"\n".join(data.split(b"\n")[-max_lines:]) + suffix


class LogReader(ILogReader):
    """
    Locates ``<name>-<kind>.log`` files in the supervisor's log directory and
    tails them. Absent or unreadable files are a normal state, never an error.
    """

    def __init__(self, log_dir: Path, encoding: str = "utf-8"):
        self._log_dir = Path(log_dir).expanduser()
        self._encoding = encoding

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def log_path(self, name: str, kind: LogKind) -> Optional[Path]:
        """Conventional path for a process log, or None for names that would escape the log directory."""
        if not _is_safe_name(name):
            logger.warning("Rejecting unsafe process name for log lookup: %r", name)
            return None
        return self._log_dir / f"{name}-{kind.value}.log"

    def get_log_descriptor(self, name: str, kind: LogKind) -> Optional[LogFileDescriptor]:
        path = self.log_path(name, kind)
        if path is None or not path.is_file():
            return None
        return LogFileDescriptor(process_name=name, kind=kind, path=path.absolute())

    def get_log_descriptors(self, name: str) -> List[LogFileDescriptor]:
        descriptors = []
        for kind in DESCRIPTOR_ORDER:
            descriptor = self.get_log_descriptor(name, kind)
            if descriptor is not None:
                descriptors.append(descriptor)
        return descriptors

    def tail(self, path: Path, max_lines: int) -> str:
        """
        Return up to the last ``max_lines`` lines of ``path`` in original order.

        Returns an empty string if the file does not exist or cannot be read.

        Raises:
            ValueError: If max_lines is not a positive integer.
        """
        if isinstance(max_lines, bool) or not isinstance(max_lines, int) or max_lines < 1:
            raise ValueError(f"max_lines must be a positive integer, got {max_lines!r}")
        try:
            data = read_tail_bytes(Path(path), max_lines)
        except OSError as e:
            logger.debug("Unable to read log %s: %s", path, e)
            return ""
        return data.decode(self._encoding, errors="replace")


__all__ = ["LogReader", "read_tail_bytes"]
