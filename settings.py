import logging
import os

log = logging.getLogger(__name__)

CONFIG_FILE = 'CODYINIT'

DEFAULT_MEMTOP = 25344
DEFAULT_STACK_DEPTH = 8
DEFAULT_PROMPT = '?'
DEFAULT_TICK_RATE = 60


class Settings:
    def __init__(self):
        self.memtop = DEFAULT_MEMTOP
        self.stack_depth = DEFAULT_STACK_DEPTH
        self.prompt = DEFAULT_PROMPT
        self.tick_rate = DEFAULT_TICK_RATE
        self.uart_paths = {}

    def __repr__(self):
        return (f"Settings(memtop={self.memtop}, stack_depth={self.stack_depth}, "
                f"prompt={self.prompt!r}, tick_rate={self.tick_rate}, uarts={self.uart_paths})")

    def load_codyinit(self, path=CONFIG_FILE):
        """Reads KEY=VALUE lines from path, if it exists. Returns self."""
        if not os.path.exists(path):
            log.debug("no configuration file at %s", path)
            return self
        try:
            with open(path, 'r') as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith('#'): continue
                    if '=' not in line:
                        log.warning("%s: ignoring line without '=': %r", path, line)
                        continue
                    key, val = line.split('=', 1)
                    self.apply(key.strip().upper(), val.strip())
        except OSError as e:
            log.warning("Error loading %s: %s", path, e)
        return self

    def apply(self, key, val):
        if key == 'MEMTOP':
            self.memtop = self._number(key, val, self.memtop, minimum=0)
        elif key == 'STACKDEPTH':
            self.stack_depth = self._number(key, val, self.stack_depth, minimum=1)
        elif key == 'TICKRATE':
            self.tick_rate = self._number(key, val, self.tick_rate, minimum=1)
        elif key == 'PROMPT':
            self.prompt = val[:1]
        elif key in ('UART1', 'UART2'):
            self.uart_paths[int(key[-1])] = val
        else:
            log.warning("unknown configuration key %s", key)

    def _number(self, key, val, default, minimum):
        try:
            number = int(val)
        except ValueError:
            log.warning("%s=%r is not a number, keeping %d", key, val, default)
            return default
        if number < minimum:
            log.warning("%s=%d is below %d, keeping %d", key, number, minimum, default)
            return default
        return number
