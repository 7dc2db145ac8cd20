import sys
from typing import BinaryIO, Optional


class DiscardSink:
    """Writable that drops everything written to it, like /dev/null."""

    def __init__(self) -> None:
        self.bytes_discarded = 0

    def write(self, data: bytes) -> int:
        self.bytes_discarded += len(data)
        return len(data)

    def flush(self) -> None:
        pass


def open_output(path: Optional[str]) -> BinaryIO:
    """Opens the sink named on the command line, `-` being stdout."""

    if path in (None, "-"):
        return sys.stdout.buffer

    return open(path, "ab")
