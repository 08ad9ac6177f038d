import tempfile
import unittest
from pathlib import Path

import numpy as np

from learning_controller import InvalidArgumentError
from playback import RestLengthPlaybackController, load_command_file
from test_learning_controller import FakeSubject


class RestLengthPlaybackTests(unittest.TestCase):
    def setUp(self):
        self.commands = np.array([[0.30, 0.20], [0.40, 0.10], [0.20, 0.30]])
        self.controller = RestLengthPlaybackController(self.commands, cmd_store_hz=10.0)

    def test_interpolates_between_samples(self):
        np.testing.assert_allclose(self.controller.interpolate_for_time(0.0), [0.30, 0.20])
        np.testing.assert_allclose(self.controller.interpolate_for_time(0.05), [0.35, 0.15])
        np.testing.assert_allclose(self.controller.interpolate_for_time(0.15), [0.30, 0.20])
        self.assertAlmostEqual(self.controller.duration_s, 0.2)

    def test_holds_last_row_past_the_end(self):
        np.testing.assert_allclose(self.controller.interpolate_for_time(5.0), [0.20, 0.30])

    def test_step_sends_interpolated_targets(self):
        subject = FakeSubject(n_clusters=1, muscles_per_cluster=2)
        self.controller.on_setup(subject)
        for _ in range(5):
            self.controller.on_step(subject, 0.01)
        self.assertAlmostEqual(subject.cables[0].targets[-1][0], 0.35)
        self.assertAlmostEqual(subject.cables[1].targets[-1][0], 0.15)
        self.assertEqual(subject.cables[0].motor_steps, 5)

    def test_rejects_bad_input(self):
        with self.assertRaises(ValueError):
            RestLengthPlaybackController(self.commands, cmd_store_hz=0.0)
        with self.assertRaises(ValueError):
            self.controller.on_setup(FakeSubject(n_clusters=1, muscles_per_cluster=3))
        subject = FakeSubject(n_clusters=1, muscles_per_cluster=2)
        self.controller.on_setup(subject)
        with self.assertRaises(InvalidArgumentError):
            self.controller.on_step(subject, 0.0)

    def test_loads_command_csv(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "restlengths.csv"
            path.write_text("0.3,0.2\n0.4,0.1\n", encoding="utf-8")
            data = load_command_file(path)
            controller = RestLengthPlaybackController(path, cmd_store_hz=2.0)
        np.testing.assert_allclose(data, [[0.3, 0.2], [0.4, 0.1]])
        self.assertAlmostEqual(controller.duration_s, 0.5)


if __name__ == "__main__":
    unittest.main()
