"""Byte-stream channels that OPEN, LOAD and SAVE can route I/O through.

Two channel numbers (1 and 2) exist. Each is backed by a pair of binary
streams, either supplied directly (sockets, pipes, BytesIO in tests) or
opened from a path named in the configuration file.
"""
import logging
import os

from errors import BasicSystemError
from lexer import MAX_LINE_LENGTH

log = logging.getLogger(__name__)

CHANNEL_NUMBERS = (1, 2)
LF = b"\n"
CR = b"\r"


class StreamChannel:
    def __init__(self, reader=None, writer=None, name=None):
        self.reader = reader
        self.writer = writer
        self.name = name or "stream"
        self.rate = 0
        self.is_open = False
        self._skip_lf = False

    def __repr__(self):
        return f"{type(self).__name__}({self.name!r})"

    def open(self, rate=0):
        self.rate = rate
        self.is_open = True
        log.debug("channel %s opened at rate %d", self.name, rate)

    def close(self):
        if not self.is_open:
            return
        self.is_open = False
        if self.writer is not None:
            try:
                self.writer.flush()
            except OSError as e:
                raise BasicSystemError(f"{self.name}: {e}") from e
        log.debug("channel %s closed", self.name)

    def write(self, data):
        if self.writer is None:
            raise BasicSystemError(f"{self.name} is not writable")
        try:
            self.writer.write(bytes(data))
            self.writer.flush()
        except OSError as e:
            raise BasicSystemError(f"{self.name}: {e}") from e

    def _read(self):
        if self.reader is None:
            raise BasicSystemError(f"{self.name} is not readable")
        try:
            return self.reader.read(1)
        except OSError as e:
            raise BasicSystemError(f"{self.name}: {e}") from e

    def read_byte(self):
        ch = self._read()
        if not ch:
            raise BasicSystemError(f"{self.name}: end of stream")
        return ch[0]

    def read_line(self):
        """Returns one line without its terminator, or None at end of stream.

        Either CR or LF ends a line; the LF of a CR LF pair is dropped.
        A line that overruns the input buffer is a SYSTEM error.
        """
        line = bytearray()
        while True:
            ch = self._read()
            if not ch:
                return bytes(line) if line else None
            if ch == LF and self._skip_lf and not line:
                self._skip_lf = False
                continue
            self._skip_lf = False
            if ch == CR:
                self._skip_lf = True
                return bytes(line)
            if ch == LF:
                return bytes(line)
            line += ch
            if len(line) > MAX_LINE_LENGTH:
                raise BasicSystemError(f"{self.name}: line too long")


class FileChannel(StreamChannel):
    """Channel backed by a path: a serial device node or a plain file.

    Reads start at the beginning of the file, writes are appended.
    """

    def __init__(self, path):
        super().__init__(name=path)
        self.path = path

    def open(self, rate=0):
        try:
            self.reader = open(self.path, 'rb') if os.path.exists(self.path) else None
            self.writer = open(self.path, 'ab')
        except OSError as e:
            self._release()
            raise BasicSystemError(f"cannot open {self.path}: {e}") from e
        super().open(rate)

    def close(self):
        try:
            super().close()
        finally:
            self._release()

    def _release(self):
        for stream in (self.reader, self.writer):
            if stream is not None:
                stream.close()
        self.reader = None
        self.writer = None


class ChannelManager:
    def __init__(self):
        self.channels = {}

    @classmethod
    def from_settings(cls, settings):
        manager = cls()
        for number in CHANNEL_NUMBERS:
            path = settings.uart_paths.get(number)
            if path:
                manager.attach(number, FileChannel(path))
        return manager

    def attach(self, number, channel):
        if number not in CHANNEL_NUMBERS:
            raise ValueError(f"no such channel: {number}")
        self.channels[number] = channel

    def get(self, number):
        channel = self.channels.get(number)
        if channel is None:
            raise BasicSystemError(f"channel {number} is not available")
        return channel

    def open(self, number, rate=0):
        channel = self.get(number)
        if not channel.is_open:
            channel.open(rate)
        return channel

    def close(self, number):
        channel = self.channels.get(number)
        if channel is not None:
            channel.close()

    def close_all(self):
        for number in list(self.channels):
            self.close(number)
