import time

from clock import JiffyClock


def test_jiffies_wrap_at_16_bits():
    clock = JiffyClock()
    clock._jiffies = 0xFFFF
    clock.tick()
    assert clock.jiffies == 0


def test_break_needs_a_running_program():
    clock = JiffyClock()
    clock.press_break()
    clock.tick()
    assert not clock.consume_break()

    clock.set_running(True)
    clock.press_break()
    assert not clock.consume_break()
    clock.tick()
    assert clock.consume_break()
    assert not clock.consume_break()


def test_stopping_the_program_drops_a_pending_break():
    clock = JiffyClock()
    clock.set_running(True)
    clock.press_break()
    clock.tick()
    clock.set_running(False)
    assert not clock.consume_break()


def test_background_thread_ticks():
    clock = JiffyClock(tick_rate=1000)
    clock.start()
    try:
        deadline = time.monotonic() + 2
        while clock.jiffies < 3 and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        clock.stop()
    assert clock.jiffies >= 3
    stopped_at = clock.jiffies
    time.sleep(0.02)
    assert clock.jiffies == stopped_at
