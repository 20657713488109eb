import io
from collections import deque

import pytest

from channels import ChannelManager, StreamChannel
from clock import JiffyClock
from interpreter import CodyBasicInterpreter
from memory import NativeCallout
from settings import Settings


class ScriptedIO:
    """Records everything written and answers input() from a script."""

    def __init__(self, lines=()):
        self.lines = deque(lines)
        self.written = []
        self.prompts = []
        self.cursor_moves = []

    def write(self, text):
        self.written.append(text)

    def input(self, prompt=""):
        self.prompts.append(prompt)
        if not self.lines:
            raise EOFError
        line = self.lines.popleft()
        if isinstance(line, BaseException):
            raise line
        return line

    def move_cursor(self, col, row):
        self.cursor_moves.append((col, row))

    @property
    def text(self):
        return "".join(self.written)

    def clear(self):
        self.written.clear()


class RecordingCallout(NativeCallout):
    """Remembers every native call it is asked to make."""

    def __init__(self):
        self.calls = []

    def call(self, address, registers):
        self.calls.append((address, tuple(registers)))
        return super().call(address, registers)


class Port:
    """In-memory channel endpoint: bytes to read plus a sink for writes."""

    def __init__(self, incoming=b""):
        self.incoming = io.BytesIO(incoming)
        self.outgoing = io.BytesIO()
        self.channel = StreamChannel(self.incoming, self.outgoing, name="test")

    def feed(self, data):
        pos = self.incoming.tell()
        self.incoming.seek(0, io.SEEK_END)
        self.incoming.write(data)
        self.incoming.seek(pos)

    @property
    def sent(self):
        return self.outgoing.getvalue()


@pytest.fixture
def scripted_io():
    return ScriptedIO()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def port1():
    return Port()


@pytest.fixture
def port2():
    return Port()


@pytest.fixture
def clock():
    return JiffyClock()


@pytest.fixture
def interp(scripted_io, settings, port1, port2, clock):
    channels = ChannelManager()
    channels.attach(1, port1.channel)
    channels.attach(2, port2.channel)
    return CodyBasicInterpreter(io_handler=scripted_io, settings=settings,
                                channels=channels, clock=clock, native=RecordingCallout())


@pytest.fixture
def run_program(interp, scripted_io):
    """Loads program text, runs it and returns everything written."""
    def run(source, inputs=()):
        interp.load_program(source)
        scripted_io.lines.extend(inputs)
        scripted_io.clear()
        interp.enter_line("RUN")
        return scripted_io.text
    return run
