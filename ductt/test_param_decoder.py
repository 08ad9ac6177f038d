import tempfile
import unittest
from pathlib import Path

import numpy as np

from param_decoder import (
    ManualParamsParseError,
    ParameterRanges,
    decode_parameters,
    format_sine_params,
    parse_param_line,
    read_manual_params,
)


N_CHANNELS = 4


class DecodeParametersTests(unittest.TestCase):
    def test_exact_length_stays_in_ranges_and_skips_flags(self):
        rng = np.random.default_rng(7)
        ranges = ParameterRanges()
        for _ in range(50):
            raw = rng.uniform(0.0, 1.0, size=4 * N_CHANNELS)
            decoded = decode_parameters(raw, N_CHANNELS, default_ignore_touch_sensors=False, default_hysteresis_s=0.7)
            self.assertFalse(decoded.flags_present)
            self.assertFalse(decoded.ignore_touch_sensors)
            self.assertEqual(decoded.hysteresis_s, 0.7)
            self.assertEqual(len(decoded.channels), N_CHANNELS)
            for ch in decoded.channels:
                self.assertTrue(ranges.amplitude[0] <= ch.amplitude <= ranges.amplitude[1])
                self.assertTrue(ranges.frequency[0] <= ch.angular_frequency <= ranges.frequency[1])
                self.assertTrue(ranges.phase[0] <= ch.phase_change <= ranges.phase[1])
                self.assertTrue(ranges.offset[0] <= ch.dc_offset <= ranges.offset[1])

    def test_all_minimum_vector_decodes_to_range_minimums(self):
        decoded = decode_parameters(np.zeros(4 * N_CHANNELS), N_CHANNELS)
        for ch in decoded.channels:
            self.assertEqual(ch.amplitude, 0.0)
            self.assertEqual(ch.dc_offset, 0.0)
            self.assertAlmostEqual(ch.angular_frequency, 0.3)
            self.assertAlmostEqual(ch.phase_change, -np.pi)

    def test_midpoint_rescaling(self):
        decoded = decode_parameters(np.full(4 * N_CHANNELS, 0.5), N_CHANNELS)
        ch = decoded.channels[0]
        self.assertAlmostEqual(ch.amplitude, 20.0)
        self.assertAlmostEqual(ch.angular_frequency, 0.3 + 0.5 * 19.7)
        self.assertAlmostEqual(ch.phase_change, 0.0)
        self.assertAlmostEqual(ch.dc_offset, 20.0)

    def test_channels_read_consecutive_slots_in_order(self):
        raw = np.zeros(4 * N_CHANNELS)
        raw[4 * 2] = 1.0  # amplitude of channel 2
        raw[4 * 3 + 3] = 0.25  # offset of channel 3
        decoded = decode_parameters(raw, N_CHANNELS)
        self.assertEqual(decoded.channels[2].amplitude, 40.0)
        self.assertEqual(decoded.channels[1].amplitude, 0.0)
        self.assertAlmostEqual(decoded.channels[3].dc_offset, 10.0)

    def test_two_trailing_flags_are_extracted(self):
        rng = np.random.default_rng(3)
        body = rng.uniform(0.0, 1.0, size=4 * N_CHANNELS)
        plain = decode_parameters(body, N_CHANNELS)
        flagged = decode_parameters(np.concatenate([body, [0.2, 0.25]]), N_CHANNELS)
        self.assertTrue(flagged.flags_present)
        self.assertTrue(flagged.ignore_touch_sensors)
        self.assertAlmostEqual(flagged.hysteresis_s, 0.5)
        self.assertEqual(flagged.channels, plain.channels)

        flagged = decode_parameters(np.concatenate([body, [0.8, 1.0]]), N_CHANNELS)
        self.assertFalse(flagged.ignore_touch_sensors)
        self.assertAlmostEqual(flagged.hysteresis_s, 2.0)

    def test_single_trailing_flag_keeps_default_hysteresis(self):
        raw = np.concatenate([np.full(4 * N_CHANNELS, 0.5), [0.9]])
        decoded = decode_parameters(raw, N_CHANNELS, default_ignore_touch_sensors=True, default_hysteresis_s=0.3)
        self.assertTrue(decoded.flags_present)
        self.assertFalse(decoded.ignore_touch_sensors)
        self.assertEqual(decoded.hysteresis_s, 0.3)

    def test_touch_flag_position_follows_source_length(self):
        raw = np.concatenate([np.full(4 * N_CHANNELS, 0.5), [0.1, 0.9]])
        # Optimizer vector carries a single flag: touch flag is the last slot.
        decoded = decode_parameters(raw, N_CHANNELS, source_length=4 * N_CHANNELS + 1)
        self.assertFalse(decoded.ignore_touch_sensors)
        # Optimizer vector has no flags at all: fall back to raw's own trailing count.
        decoded = decode_parameters(raw, N_CHANNELS, source_length=4 * N_CHANNELS)
        self.assertTrue(decoded.ignore_touch_sensors)

    def test_short_vector_is_rejected(self):
        with self.assertRaises(ValueError):
            decode_parameters(np.zeros(4 * N_CHANNELS - 1), N_CHANNELS)

    def test_custom_ranges(self):
        ranges = ParameterRanges(amplitude=(1.0, 2.0), hysteresis=(0.0, 4.0))
        raw = np.concatenate([np.ones(4), [0.7, 0.5]])
        decoded = decode_parameters(raw, 1, ranges=ranges)
        self.assertEqual(decoded.channels[0].amplitude, 2.0)
        self.assertAlmostEqual(decoded.hysteresis_s, 2.0)

    def test_format_sine_params_lists_every_channel(self):
        decoded = decode_parameters(np.zeros(4 * N_CHANNELS), N_CHANNELS)
        text = format_sine_params(decoded.channels)
        self.assertEqual(len(text.splitlines()), N_CHANNELS)
        self.assertIn("channel[3]", text)


class ManualParamsTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "params.txt"
        self.path.write_text(
            "0.1,0.2,0.3\n"
            "0.5,0.25,0.75,0.0,1.0\n"
            "0.4,abc,0.6\n",
            encoding="utf-8",
        )

    def tearDown(self):
        self._tmp.cleanup()

    def test_selected_line_is_parsed_and_padded_with_defaults(self):
        params = read_manual_params(self.path, 2, 6, rng=np.random.default_rng(0), jitter=0.0)
        np.testing.assert_allclose(params, [0.5, 0.25, 0.75, 0.0, 1.0, 1.0])

    def test_jitter_stays_within_bound(self):
        params = read_manual_params(self.path, 1, 5, rng=np.random.default_rng(1), jitter=0.005)
        np.testing.assert_allclose(params, [0.1, 0.2, 0.3, 1.0, 1.0], atol=0.005 + 1e-12)
        self.assertFalse(np.allclose(params, [0.1, 0.2, 0.3, 1.0, 1.0], atol=0.0, rtol=0.0))

    def test_missing_line_yields_neutral_defaults(self):
        params = read_manual_params(self.path, 10, 4, rng=np.random.default_rng(2))
        np.testing.assert_allclose(params, np.ones(4), atol=0.005 + 1e-12)

    def test_missing_file_yields_neutral_defaults(self):
        params = read_manual_params(Path(self._tmp.name) / "absent.txt", 1, 3, jitter=0.0)
        np.testing.assert_allclose(params, np.ones(3))

    def test_non_numeric_field_defaults_to_one(self):
        params = read_manual_params(self.path, 3, 3, jitter=0.0)
        np.testing.assert_allclose(params, [0.4, 1.0, 0.6])

    def test_extra_fields_are_dropped(self):
        params = read_manual_params(self.path, 2, 2, jitter=0.0)
        np.testing.assert_allclose(params, [0.5, 0.25])

    def test_line_numbers_are_one_based(self):
        with self.assertRaises(ValueError):
            read_manual_params(self.path, 0, 3)

    def test_empty_record_raises_parse_error(self):
        with self.assertRaises(ManualParamsParseError):
            parse_param_line("   \n", 3)
        values, bad = parse_param_line("1.5, x ,2", 4)
        np.testing.assert_allclose(values, [1.5, 1.0, 2.0, 1.0])
        self.assertEqual(bad, [1])


if __name__ == "__main__":
    unittest.main()
