import base64
import io
import tempfile
from typing import BinaryIO, Iterable

# Payloads bigger than this spill from memory to a temporary file.
SPOOL_MAX_SIZE = 2 * 1024 * 1024


class Base64StreamEncoder:
    """Write filter that base64-encodes everything written through it.

    Input is encoded in whole 3-byte groups as it arrives; the leftover
    bytes are held back until more data comes in or `flush()` pads them.
    The output is therefore the same however the input is split up.
    """

    def __init__(self, target: BinaryIO):
        self._target = target
        self._pending = b""
        self._flushed = False

    def write(self, chunk: bytes) -> int:
        if self._flushed:
            raise ValueError("write to a flushed Base64StreamEncoder")
        data = self._pending + bytes(chunk)
        usable = len(data) - len(data) % 3
        if usable:
            self._target.write(base64.b64encode(data[:usable]))
        self._pending = data[usable:]
        return len(chunk)

    def flush(self) -> None:
        if not self._flushed:
            if self._pending:
                self._target.write(base64.b64encode(self._pending))
                self._pending = b""
            self._flushed = True
        self._target.flush()


def encode_chunks(chunks: Iterable[bytes]) -> BinaryIO:
    """Base64-encode a chunk sequence into a rewound, readable buffer.

    The sequence is consumed once, in order, before the buffer is returned.
    The caller owns the buffer and must close it.
    """
    stream = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE, mode="w+b")
    try:
        encoder = Base64StreamEncoder(stream)
        for chunk in chunks:
            encoder.write(chunk)
        encoder.flush()
        stream.seek(0)
    except BaseException:
        stream.close()
        raise
    return stream


def encode_message(message) -> BinaryIO:
    """Base64 payload for Graph's MIME sendMail upload."""
    return encode_chunks(message.to_iterable())


def request_body(stream: BinaryIO):
    """What to hand to requests as the POST body.

    requests sizes file bodies via fileno(), which would push a spooled
    buffer to disk, so payloads still held in memory are passed as bytes.
    """
    stream.seek(0, io.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    if size <= SPOOL_MAX_SIZE:
        return stream.read()
    return stream
