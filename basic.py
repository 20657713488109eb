import argparse
import logging
import signal
import sys

from errors import BasicError
from interpreter import CodyBasicInterpreter
from settings import CONFIG_FILE, Settings

log = logging.getLogger(__name__)


class ConsoleIOHandler:
    def write(self, text):
        print(text, end="", flush=True)

    def input(self, prompt=""):
        return input(prompt)

    def move_cursor(self, col, row):
        # ANSI escape codes for cursor positioning
        # \033[<row>;<col>H
        # Note: ANSI is 1-based
        print(f"\033[{row+1};{col+1}H", end="", flush=True)


class BasicCLI:
    def __init__(self, io_handler, settings=None):
        self.io_handler = io_handler
        self.interpreter = CodyBasicInterpreter(io_handler=io_handler, settings=settings)
        self.at_prompt = False

    def print(self, text):
        self.io_handler.write(text + "\n")

    def input(self, prompt):
        return self.io_handler.input(prompt)

    def on_interrupt(self, signum, frame):
        """Ctrl-C cancels the line being typed or the INPUT being waited
        for. Anywhere else it only presses the break key, which a running
        program notices between statements."""
        interp = self.interpreter
        if self.at_prompt or interp.awaiting_input:
            raise KeyboardInterrupt
        interp.clock.press_break()

    def load_program(self, filename):
        try:
            with open(filename, 'r') as f:
                source = f.read()
        except OSError as e:
            self.print(f"Error loading: {e}")
            return False
        try:
            self.interpreter.load_program(source)
        except BasicError as e:
            self.interpreter.recover(e)
            return False
        log.debug("loaded %s", filename)
        return True

    def run_repl(self, autorun=False):
        self.interpreter.greet()

        if autorun:
            self.interpreter.enter_line("RUN")

        while True:
            self.at_prompt = True
            try:
                user_input = self.input("")
            except EOFError:
                break
            except KeyboardInterrupt:
                self.print("")
                continue
            finally:
                self.at_prompt = False

            self.interpreter.enter_line(user_input)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Cody Computer BASIC interpreter")
    parser.add_argument('program', nargs='?', help="program file to load and run")
    parser.add_argument('--config', default=CONFIG_FILE, help="configuration file (default: %(default)s)")
    parser.add_argument('--memtop', type=int, help="program memory size in bytes")
    parser.add_argument('--debug', action='store_true', help="log interpreter activity to stderr")
    args = parser.parse_args(argv)

    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if args.debug else logging.WARNING,
        format='%(name)s: %(levelname)s: %(message)s',
    )

    settings = Settings().load_codyinit(args.config)
    if args.memtop is not None:
        settings.memtop = args.memtop

    cli = BasicCLI(ConsoleIOHandler(), settings)
    autorun = bool(args.program) and cli.load_program(args.program)

    signal.signal(signal.SIGINT, cli.on_interrupt)
    clock = cli.interpreter.clock
    clock.start()
    try:
        cli.run_repl(autorun=autorun)
    finally:
        clock.stop()
        cli.interpreter.channels.close_all()


if __name__ == "__main__":
    main()
