import unittest

import numpy as np

from config import AnalyzerConfig, FftBackend
from spectrum import SpectrumAnalyzer, bin_freq, dominant_frequency


def cosine_frame(bin_index: int, magnitude: float, frame_size: int) -> np.ndarray:
    # Exact-bin cosine: |X[k]| = A * N / 2
    amplitude = 2.0 * magnitude / frame_size
    n = np.arange(frame_size)
    return (amplitude * np.cos(2 * np.pi * bin_index * n / frame_size)).astype(np.float32)


class TestSpectrumAnalyzer(unittest.TestCase):
    def setUp(self):
        self.analyzer = SpectrumAnalyzer(AnalyzerConfig(sample_rate=44100, frame_size=1024))

    def test_shapes(self):
        spectrum = self.analyzer.analyze(np.zeros(1024, dtype=np.float32))
        self.assertEqual(len(spectrum.coefficients), 1024)
        self.assertEqual(len(spectrum.magnitudes), 512)

    def test_forward_transform_is_unscaled(self):
        spectrum = self.analyzer.analyze(np.ones(1024, dtype=np.float32))
        self.assertAlmostEqual(spectrum.magnitudes[0], 1024.0, places=3)
        self.assertLess(float(np.max(spectrum.magnitudes[1:])), 1e-6)

    def test_impulse_is_flat(self):
        frame = np.zeros(1024, dtype=np.float32)
        frame[0] = 0.5
        spectrum = self.analyzer.analyze(frame)
        np.testing.assert_allclose(spectrum.magnitudes, 0.5, atol=1e-9)

    def test_exact_bin_cosine_magnitude(self):
        spectrum = self.analyzer.analyze(cosine_frame(3, 100.0, 1024))
        self.assertAlmostEqual(spectrum.magnitudes[3], 100.0, places=2)
        self.assertEqual(int(np.argmax(spectrum.magnitudes)), 3)

    def test_bin_freq(self):
        self.assertAlmostEqual(bin_freq(3, 44100, 1024), 3 * 44100 / 1024)
        self.assertAlmostEqual(self.analyzer.bin_freq(0), 0.0)
        spectrum = self.analyzer.analyze(np.zeros(1024, dtype=np.float32))
        self.assertAlmostEqual(spectrum.bin_freq(10), 10 * 44100 / 1024)

    def test_bins_for_range_is_closed_and_below_nyquist(self):
        # 44100/1024 = 43.07 Hz per bin; 60-250 Hz -> bins 2..5
        np.testing.assert_array_equal(self.analyzer.bins_for_range(60.0, 250.0), [2, 3, 4, 5])
        idx = self.analyzer.bins_for_range(6000.0, 30000.0)
        self.assertEqual(int(idx[-1]), 511)

    def test_scipy_backend_matches_numpy(self):
        scipy_analyzer = SpectrumAnalyzer(
            AnalyzerConfig(sample_rate=44100, frame_size=1024, fft_backend=FftBackend.SCIPY)
        )
        rng = np.random.default_rng(7)
        frame = rng.uniform(-1, 1, 1024).astype(np.float32)
        np.testing.assert_allclose(
            scipy_analyzer.analyze(frame).magnitudes,
            self.analyzer.analyze(frame).magnitudes,
            rtol=1e-9,
            atol=1e-9,
        )

    def test_dominant_frequency(self):
        spectrum = self.analyzer.analyze(cosine_frame(10, 50.0, 1024))
        self.assertAlmostEqual(dominant_frequency(spectrum), 10 * 44100 / 1024)

    def test_dominant_frequency_silence_or_none(self):
        spectrum = self.analyzer.analyze(np.zeros(1024, dtype=np.float32))
        self.assertEqual(dominant_frequency(spectrum), 0.0)
        self.assertEqual(dominant_frequency(None), 0.0)


if __name__ == "__main__":
    unittest.main()
