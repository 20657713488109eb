import logging
import threading

log = logging.getLogger(__name__)


class JiffyClock:
    """Periodic tick source.

    A background thread bumps a 16-bit jiffy counter tick_rate times per
    second. It also turns a break-key press into a pending break, but only
    while the interpreter reports that a program is running; the
    interpreter collects the break between statements with consume_break().
    """

    def __init__(self, tick_rate=60):
        self.tick_rate = tick_rate
        self.lock = threading.Lock()
        self._jiffies = 0
        self._break_key = False
        self._break_pending = False
        self.running = False
        self._stop = threading.Event()
        self._thread = None

    @property
    def jiffies(self):
        with self.lock:
            return self._jiffies

    def start(self):
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="jiffy-clock", daemon=True)
        self._thread.start()
        log.debug("clock started at %d ticks per second", self.tick_rate)

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _run(self):
        interval = 1.0 / self.tick_rate
        while not self._stop.wait(interval):
            self.tick()

    def tick(self):
        with self.lock:
            self._jiffies = (self._jiffies + 1) & 0xFFFF
            if self._break_key:
                self._break_key = False
                if self.running:
                    self._break_pending = True

    def press_break(self):
        with self.lock:
            self._break_key = True

    def consume_break(self):
        with self.lock:
            pending = self._break_pending
            self._break_pending = False
            return pending

    def set_running(self, running):
        with self.lock:
            self.running = running
            if not running:
                self._break_pending = False
