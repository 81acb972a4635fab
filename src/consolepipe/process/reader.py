"""Blocking chunk reads from a redirected child stream."""

from __future__ import annotations

import codecs
import threading
from typing import BinaryIO

from consolepipe.config import DEFAULT_ENCODING, DEFAULT_ENCODING_ERRORS, DEFAULT_READ_SIZE


class ChunkReader:
    """Read whatever is available on a stream and decode it to text.

    ``read`` blocks until at least one byte arrives or the stream closes. It
    returns ``None`` at end of stream and ``""`` when the bytes read so far only
    form the start of a multi-byte character.
    """

    def __init__(
        self,
        stream: BinaryIO,
        *,
        read_size: int = DEFAULT_READ_SIZE,
        encoding: str = DEFAULT_ENCODING,
        errors: str = DEFAULT_ENCODING_ERRORS,
    ) -> None:
        if read_size <= 0:
            raise ValueError(f"Invalid read size: {read_size}")
        self._stream = stream
        self._read_size = read_size
        self._decoder = codecs.getincrementaldecoder(encoding)(errors=errors)
        self._lock = threading.Lock()
        self._eof = False

    @property
    def at_eof(self) -> bool:
        return self._eof

    def read(self) -> str | None:
        with self._lock:
            if self._eof:
                return None
            read = getattr(self._stream, "read1", None) or self._stream.read
            data = read(self._read_size)
            if isinstance(data, str):
                if data:
                    return data
                self._eof = True
                return None
            if not data:
                self._eof = True
                tail = self._decoder.decode(b"", final=True)
                return tail or None
            return self._decoder.decode(data)

    def close(self) -> None:
        with self._lock:
            self._eof = True
            self._stream.close()
