import logging
from collections import namedtuple
from enum import Enum

from channels import ChannelManager
from clock import JiffyClock
from data_reader import DataReader
from errors import BasicBreak, BasicError, BasicLogicError, BasicSyntaxError, BasicSystemError
from expressions import COMMA, Evaluator, LineCursor, TextBuffer
from lexer import DOLLAR, MAX_LINE_LENGTH, NEWLINE, QUOTE, Keyword, Lexer, is_alpha
from memory import SYS_A, SYS_X, SYS_Y, Memory, NativeCallout
from numlib import format_signed, parse_signed
from program_store import ProgramStore
from settings import Settings
from variables import VariableStore

log = logging.getLogger(__name__)

GREETING = "\n   **** CODY COMPUTER BASIC V1.0 ****\n"
READY = "\nREADY.\n"

LOCAL = 0
SERIAL_RATE = 0x0F
SEMICOLON = ord(';')
SPACE = ord(' ')
LOAD_PROMPT = b"?"

ForFrame = namedtuple('ForFrame', ['resume', 'ref', 'stop'])


class RunMode(Enum):
    REPL = 'REPL'
    RUNNING_PROGRAM = 'RUNNING_PROGRAM'
    RUNNING_IMMEDIATE = 'RUNNING_IMMEDIATE'


class CodyBasicInterpreter:
    def __init__(self, io_handler=None, settings=None, channels=None, clock=None,
                 memory=None, native=None):
        self.io_handler = io_handler # Can be None for stdout/stdin fallback
        self.settings = settings or Settings()
        self.lexer = Lexer()
        self.program = ProgramStore(self.settings.memtop)
        self.variables = VariableStore()
        self.memory = memory or Memory()
        self.native = native or NativeCallout()
        self.clock = clock or JiffyClock(self.settings.tick_rate)
        self.channels = channels or ChannelManager.from_settings(self.settings)
        self.evaluator = Evaluator(self.variables, self.memory, self.clock, self.settings.stack_depth)
        self.data = DataReader(self.program)
        self.output = TextBuffer()

        self.stack_depth = self.settings.stack_depth
        self.gosub_stack = []
        self.for_stack = []

        self.mode = RunMode.REPL
        self.io_route = LOCAL
        self.io_rate = 0
        self.current_pos = None
        self.next_pos = None
        self.awaiting_input = False

        self.handlers = {
            Keyword.NEW: self.do_new,
            Keyword.LIST: self.do_list,
            Keyword.LOAD: self.do_load,
            Keyword.SAVE: self.do_save,
            Keyword.RUN: self.do_run,
            Keyword.REM: self.do_nothing,
            Keyword.IF: self.do_if,
            Keyword.GOTO: self.do_goto,
            Keyword.GOSUB: self.do_gosub,
            Keyword.RETURN: self.do_return,
            Keyword.FOR: self.do_for,
            Keyword.NEXT: self.do_next,
            Keyword.POKE: self.do_poke,
            Keyword.INPUT: self.do_input,
            Keyword.PRINT: self.do_print,
            Keyword.OPEN: self.do_open,
            Keyword.CLOSE: self.do_close,
            Keyword.READ: self.do_read,
            Keyword.RESTORE: self.do_restore,
            Keyword.DATA: self.do_nothing,
            Keyword.END: self.do_end,
            Keyword.SYS: self.do_sys,
        }

    # REPL surface

    def greet(self):
        self._write_local(GREETING)
        self._write_local(READY)

    def enter_line(self, text):
        """One turn of the REPL: store a numbered line or run an immediate one."""
        try:
            record = self.lexer.tokenize(text)
            if record.is_program_line:
                self.program.enter(record)
                return
            self._set_mode(RunMode.REPL)
            self.execute_statement(LineCursor(record.body))
            self._write_local(READY)
        except BasicError as e:
            self.recover(e)

    def execute_direct(self, code):
        """Runs one unnumbered line, letting BASIC errors propagate."""
        record = self.lexer.tokenize(code)
        if record.is_program_line:
            raise BasicSyntaxError("line number not allowed here")
        self.execute_statement(LineCursor(record.body))

    def load_program(self, source_code, reset=True):
        if reset:
            self.program.clear()
            self.variables.reset()
            self.data.restore()
        for line in source_code.splitlines():
            if not line.strip():
                continue
            record = self.lexer.tokenize(line)
            if not record.is_program_line:
                raise BasicSyntaxError(f"line without line number: {line!r}")
            self.program.enter(record)

    def list_program(self, start=None, end=None):
        """Returns the listing of lines from start up to (excluding) end."""
        start_pos = 0 if start is None else self.program.find(start)[1]
        stop_pos = None if end is None else self.program.find(end)[1]
        return [self.lexer.line_text(number, body)
                for number, body in self.program.lines(start_pos, stop_pos)]

    def set_memory_limit(self, limit):
        self.program.set_limit(limit)

    def recover(self, error):
        line_number = None
        if self.mode is RunMode.RUNNING_PROGRAM and self.current_pos is not None \
                and not self.program.is_end(self.current_pos):
            line_number = self.program.line_number_at(self.current_pos)
        log.info("%s (%s) at line %s", error.kind.value, error.detail or "-", line_number)

        self.output.take()
        self.evaluator.stack.clear()
        self._set_mode(RunMode.REPL)
        try:
            self._route_local()
        except BasicSystemError as e:
            log.warning("closing channel after error failed: %s", e)
        self._write_local("\n" + error.message(line_number) + "\n\n" + READY)

    # Execution core

    def execute_statement(self, cursor):
        self.evaluator.stack.clear()
        cursor.skip_space()
        ch = cursor.peek()
        if ch == NEWLINE:
            return
        if ch & 0x80:
            handler = self.handlers.get(ch)
            if handler is None:
                raise BasicSyntaxError(f"{ch:#04x} cannot start a statement")
            cursor.advance()
            handler(cursor)
        else:
            self.do_assign(cursor)

    def _set_mode(self, mode):
        self.mode = mode
        self.clock.set_running(mode is not RunMode.REPL)

    def _check_break(self):
        if self.clock.consume_break():
            raise BasicBreak()

    def _only_repl(self):
        if self.mode is not RunMode.REPL:
            raise BasicLogicError("only allowed in direct mode")

    def _only_run(self):
        if self.mode is not RunMode.RUNNING_PROGRAM:
            raise BasicLogicError("only allowed in a running program")

    def _find_line(self, line_number):
        found, position = self.program.find(line_number)
        if not found:
            raise BasicLogicError(f"no line {line_number}")
        return position

    # Output and input routing

    def _write_local(self, text):
        if self.io_handler is not None:
            self.io_handler.write(text)
        else:
            print(text, end="", flush=True)

    def flush(self):
        data = self.output.take()
        if not data:
            return
        if self.io_route == LOCAL:
            self._write_local(data.decode('latin-1'))
        else:
            self.channels.get(self.io_route).write(data)

    def _route_local(self):
        route = self.io_route
        self.io_route = LOCAL
        self.io_rate = 0
        if route != LOCAL:
            self.channels.close(route)

    def _route_to(self, number, rate):
        if number not in (1, 2):
            raise BasicSystemError(f"no such device {number}")
        if self.io_route not in (LOCAL, number):
            self._route_local()
        self.channels.open(number, rate)
        self.io_route = number
        self.io_rate = rate
        log.debug("I/O routed to channel %d", number)

    def _read_line(self, prompt=""):
        if self.io_route != LOCAL:
            if prompt:
                self.output.write(prompt.encode('latin-1'))
            self.flush()
            line = self.channels.get(self.io_route).read_line()
            if line is None:
                raise BasicSystemError(f"end of input on channel {self.io_route}")
            return line
        self.flush()
        self.awaiting_input = True
        try:
            if self.io_handler is not None:
                text = self.io_handler.input(prompt)
            else:
                text = input(prompt)
        except KeyboardInterrupt:
            raise BasicBreak() from None
        except EOFError:
            raise BasicSystemError("end of input") from None
        finally:
            self.awaiting_input = False
        # The keyboard stops accepting keys once the input buffer is full
        return text[:MAX_LINE_LENGTH].encode('latin-1', 'replace')

    # Statements usable only in direct mode

    def do_new(self, cursor):
        self._only_repl()
        cursor.expect_end()
        self.program.clear()
        self.variables.reset()
        self.data.restore()
        log.debug("program cleared")

    def do_list(self, cursor):
        self._only_repl()
        start, stop = 0, None
        if not cursor.at_end():
            start = self.program.find(self.evaluator.evaluate(cursor))[1]
            if not cursor.at_end():
                cursor.expect(COMMA)
                stop = self.program.find(self.evaluator.evaluate(cursor))[1]
        cursor.expect_end()
        self._set_mode(RunMode.RUNNING_IMMEDIATE)
        self._list_lines(start, stop)
        self._set_mode(RunMode.REPL)

    def _list_lines(self, start, stop):
        for number, body in self.program.lines(start, stop):
            self._check_break()
            self.output.write(self.lexer.line_text(number, body).encode('latin-1'))
            self.output.put(NEWLINE)
            self.flush()

    def do_load(self, cursor):
        self._only_repl()
        self._set_mode(RunMode.RUNNING_IMMEDIATE)
        device = self.evaluator.evaluate(cursor)
        cursor.expect(COMMA)
        kind = self.evaluator.evaluate(cursor)
        cursor.expect_end()
        self._route_to(device, SERIAL_RATE)
        channel = self.channels.get(device)
        if kind == 0:
            self._load_basic(channel)
            self._route_local()
            self._set_mode(RunMode.REPL)
        else:
            start = self._load_binary(channel)
            self._route_local()
            self._set_mode(RunMode.REPL)
            self._call_native(start)

    def _load_basic(self, channel):
        self.program.clear()
        self.variables.reset()
        self.data.restore()
        last = 0
        while True:
            self._check_break()
            channel.write(LOAD_PROMPT)
            line = channel.read_line()
            if not line:
                break
            record = self.lexer.tokenize(line)
            if not record.is_program_line:
                raise BasicSystemError("loaded line has no line number")
            if record.line_number <= last:
                raise BasicSystemError(f"line {record.line_number} out of order")
            self.program.append(record)
            last = record.line_number
        log.debug("loaded %d lines", len(self.program.line_numbers()))

    def _load_binary(self, channel):
        start = channel.read_byte() | (channel.read_byte() << 8)
        end = channel.read_byte() | (channel.read_byte() << 8)
        address = start
        while True:
            self.memory.poke(address, channel.read_byte())
            if address == end:
                break
            address = (address + 1) & 0xFFFF
        log.debug("loaded binary image $%04X-$%04X", start, end)
        return start

    def do_save(self, cursor):
        self._only_repl()
        self._set_mode(RunMode.RUNNING_IMMEDIATE)
        device = self.evaluator.evaluate(cursor)
        cursor.expect_end()
        self._route_to(device, SERIAL_RATE)
        self._list_lines(0, None)
        # The loader stops at an empty line
        self.output.put(NEWLINE)
        self.flush()
        self._route_local()
        self._set_mode(RunMode.REPL)

    def do_run(self, cursor):
        self._only_repl()
        cursor.expect_end()
        self.variables.reset()
        self.data.restore()
        self.gosub_stack.clear()
        self.for_stack.clear()
        self._set_mode(RunMode.RUNNING_PROGRAM)
        self.current_pos = 0
        log.debug("RUN started")

        while self.mode is RunMode.RUNNING_PROGRAM and not self.program.is_end(self.current_pos):
            self._check_break()
            self.next_pos = self.program.next_position(self.current_pos)
            self.execute_statement(LineCursor(self.program.body_at(self.current_pos)))
            self.current_pos = self.next_pos

        log.debug("RUN finished")
        self._set_mode(RunMode.REPL)
        self._route_local()

    # Control flow

    def do_nothing(self, cursor):
        pass

    def do_if(self, cursor):
        if self.evaluator.relation(cursor):
            cursor.expect(Keyword.THEN)
            self.execute_statement(cursor)

    def do_goto(self, cursor):
        self._only_run()
        target = self.evaluator.evaluate(cursor)
        cursor.expect_end()
        self.next_pos = self._find_line(target)

    def do_gosub(self, cursor):
        self._only_run()
        target = self.evaluator.evaluate(cursor)
        cursor.expect_end()
        position = self._find_line(target)
        if len(self.gosub_stack) >= self.stack_depth:
            raise BasicSystemError("GOSUB stack overflow")
        self.gosub_stack.append(self.next_pos)
        self.next_pos = position

    def do_return(self, cursor):
        self._only_run()
        cursor.expect_end()
        if not self.gosub_stack:
            raise BasicLogicError("RETURN without GOSUB")
        self.next_pos = self.gosub_stack.pop()

    def do_for(self, cursor):
        self._only_run()
        ref = self.evaluator.variable(cursor)
        if ref.is_string:
            raise BasicSyntaxError("FOR needs a numeric variable")
        cursor.expect(Keyword.EQ)
        start = self.evaluator.evaluate(cursor)
        cursor.expect(Keyword.TO)
        stop = self.evaluator.evaluate(cursor)
        cursor.expect_end()
        if len(self.for_stack) >= self.stack_depth:
            raise BasicSystemError("FOR stack overflow")
        self.variables.set_number(ref.slot, start, ref.index)
        self.for_stack.append(ForFrame(self.next_pos, ref, stop))

    def do_next(self, cursor):
        self._only_run()
        cursor.expect_end()
        if not self.for_stack:
            raise BasicLogicError("NEXT without FOR")
        frame = self.for_stack[-1]
        value = self.variables.get_number(frame.ref.slot, frame.ref.index)
        if value == frame.stop:
            self.for_stack.pop()
            return
        self.variables.set_number(frame.ref.slot, value + 1, frame.ref.index)
        self.next_pos = frame.resume

    def do_end(self, cursor):
        self._only_run()
        cursor.expect_end()
        self._set_mode(RunMode.REPL)

    # Data, memory and I/O statements

    def do_assign(self, cursor):
        ref = self.evaluator.variable(cursor)
        cursor.expect(Keyword.EQ)
        if ref.is_string:
            value = self.evaluator.string_value(cursor)
            cursor.expect_end()
            self.variables.set_string(ref.slot, value)
        else:
            value = self.evaluator.evaluate(cursor)
            cursor.expect_end()
            self.variables.set_number(ref.slot, value, ref.index)

    def do_poke(self, cursor):
        address = self.evaluator.evaluate(cursor)
        cursor.expect(COMMA)
        value = self.evaluator.evaluate(cursor)
        cursor.expect_end()
        self.memory.poke(address, value)

    def do_sys(self, cursor):
        address = self.evaluator.evaluate(cursor)
        cursor.expect_end()
        self._call_native(address)

    def _call_native(self, address):
        registers = (self.memory.peek(SYS_A), self.memory.peek(SYS_X), self.memory.peek(SYS_Y))
        result = self.native.call(address, registers)
        for cell, value in zip((SYS_A, SYS_X, SYS_Y), result):
            self.memory.poke(cell, value)

    def do_read(self, cursor):
        while True:
            ref = self.evaluator.variable(cursor)
            if ref.is_string:
                raise BasicSyntaxError("READ needs numeric variables")
            self.variables.set_number(ref.slot, self.data.next_value(), ref.index)
            if cursor.at_end():
                return
            cursor.expect(COMMA)

    def do_restore(self, cursor):
        cursor.expect_end()
        self.data.restore()

    def do_open(self, cursor):
        self._only_run()
        device = self.evaluator.evaluate(cursor)
        cursor.expect(COMMA)
        rate = self.evaluator.evaluate(cursor)
        cursor.expect_end()
        if device == LOCAL:
            self._route_local()
        else:
            self._route_to(device, rate)

    def do_close(self, cursor):
        self._only_run()
        cursor.expect_end()
        self._route_local()

    def do_input(self, cursor):
        self._only_run()
        prompt = self.settings.prompt + " " if self.settings.prompt else ""
        while True:
            ref = self.evaluator.variable(cursor)
            line = self._read_line(prompt)
            if ref.is_string:
                self.variables.set_string(ref.slot, line)
            else:
                self.variables.set_number(ref.slot, parse_signed(line), ref.index)
            self.output.tab_pos = 0
            if self.io_route != LOCAL:
                self.output.put(NEWLINE)
                self.flush()
            if cursor.at_end():
                return
            cursor.expect(COMMA)

    def do_print(self, cursor):
        out = self.output
        out.take()
        while True:
            cursor.skip_space()
            ch = cursor.peek()
            if ch == NEWLINE:
                out.put(NEWLINE)
                break
            if ch == SEMICOLON:
                # Ends the statement; anything after it is ignored
                break
            if ch == Keyword.AT:
                cursor.advance()
                self._print_at(cursor)
            elif ch == Keyword.TAB:
                cursor.advance()
                self.evaluator.one_arg(cursor)
                column = self.evaluator.stack.pop() & 0xFF
                while out.tab_pos < column:
                    out.put(SPACE)
            elif self._starts_string(cursor):
                self.evaluator.string_expression(cursor, out)
            else:
                out.write(format_signed(self.evaluator.evaluate(cursor)).encode('ascii'))

            cursor.skip_space()
            ch = cursor.peek()
            if ch in (SEMICOLON, NEWLINE):
                continue
            cursor.advance()
            if ch != COMMA:
                raise BasicSyntaxError("expected ',' or ';' in PRINT")
        self.flush()

    def _starts_string(self, cursor):
        ch = cursor.peek()
        if ch in (QUOTE, Keyword.STR, Keyword.CHR, Keyword.SUB):
            return True
        return is_alpha(ch) and cursor.peek(1) == DOLLAR

    def _print_at(self, cursor):
        self.flush()
        self.evaluator.two_args(cursor)
        column, row = self.evaluator.stack.pop_both()
        if self.io_route != LOCAL:
            return
        self.output.tab_pos = column & 0xFF
        if self.io_handler is not None and hasattr(self.io_handler, 'move_cursor'):
            self.io_handler.move_cursor(column, row)
