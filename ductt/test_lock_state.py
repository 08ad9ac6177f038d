import unittest

from lock_state import LockState, LockStateMachine, group_fully_touching


class _Sensor:
    def __init__(self, touching):
        self.touching = touching

    def is_touching(self):
        return self.touching


def _run(machine, state, ticks, pause, unpause, hysteresis_s):
    return [machine.update(state, pause, unpause, hysteresis_s) for _ in range(ticks)]


class LockStateMachineTests(unittest.TestCase):
    def setUp(self):
        self.machine = LockStateMachine(tick_rate_hz=1000.0)

    def test_locks_on_first_tick_past_hysteresis(self):
        state = LockState()
        results = _run(self.machine, state, 500, True, False, 0.5)
        self.assertFalse(any(results))
        self.assertFalse(state.is_paused)
        self.assertEqual(state.debounce_counter, 500)

        self.assertTrue(self.machine.update(state, True, False, 0.5))
        self.assertTrue(state.is_paused)
        self.assertEqual(state.debounce_counter, 0)

    def test_lock_is_reported_only_on_entering_tick(self):
        state = LockState()
        _run(self.machine, state, 501, True, False, 0.5)
        results = _run(self.machine, state, 100, True, False, 0.5)
        self.assertFalse(any(results))
        self.assertTrue(state.is_paused)

    def test_pause_signal_alone_never_unlocks(self):
        state = LockState()
        _run(self.machine, state, 501, True, False, 0.5)
        _run(self.machine, state, 2000, True, False, 0.5)
        self.assertTrue(state.is_paused)
        self.assertEqual(state.debounce_counter, 0)

    def test_unpause_needs_both_signals_past_hysteresis(self):
        state = LockState()
        _run(self.machine, state, 501, True, False, 0.5)

        # Unpause alone accumulates but cannot commit without the pause signal.
        _run(self.machine, state, 800, False, True, 0.5)
        self.assertTrue(state.is_paused)
        self.assertEqual(state.debounce_counter, 800)

        state.debounce_counter = 0
        results = _run(self.machine, state, 500, True, True, 0.5)
        self.assertTrue(state.is_paused)
        self.assertFalse(self.machine.update(state, True, True, 0.5))
        self.assertFalse(state.is_paused)
        self.assertFalse(any(results))
        self.assertEqual(state.debounce_counter, 0)

    def test_counter_holds_when_no_signal_applies(self):
        state = LockState()
        _run(self.machine, state, 10, True, False, 0.5)
        _run(self.machine, state, 10, False, False, 0.5)
        _run(self.machine, state, 10, False, True, 0.5)
        self.assertEqual(state.debounce_counter, 10)
        self.assertFalse(state.is_paused)

    def test_zero_hysteresis_locks_immediately(self):
        state = LockState()
        self.assertTrue(self.machine.update(state, True, False, 0.0))
        self.assertTrue(state.is_paused)

    def test_threshold_scales_with_tick_rate(self):
        machine = LockStateMachine(tick_rate_hz=100.0)
        self.assertAlmostEqual(machine.threshold(0.5), 50.0)
        state = LockState()
        _run(machine, state, 50, True, False, 0.5)
        self.assertFalse(state.is_paused)
        self.assertTrue(machine.update(state, True, False, 0.5))

    def test_joints_keep_independent_state(self):
        bottom = LockState()
        top = LockState()
        for _ in range(501):
            self.machine.update(bottom, True, False, 0.5)
            self.machine.update(top, False, True, 0.5)
        self.assertTrue(bottom.is_paused)
        self.assertFalse(top.is_paused)
        self.assertEqual(top.debounce_counter, 0)

    def test_reset_clears_state(self):
        state = LockState()
        _run(self.machine, state, 501, True, False, 0.5)
        state.reset()
        self.assertEqual(state, LockState())

    def test_tick_rate_must_be_positive(self):
        with self.assertRaises(ValueError):
            LockStateMachine(tick_rate_hz=0.0)


class TouchGroupTests(unittest.TestCase):
    def test_group_touching_requires_every_sensor(self):
        self.assertTrue(group_fully_touching([_Sensor(True), _Sensor(True)]))
        self.assertFalse(group_fully_touching([_Sensor(True), _Sensor(False)]))

    def test_empty_group_reads_as_touching(self):
        self.assertTrue(group_fully_touching([]))


if __name__ == "__main__":
    unittest.main()
