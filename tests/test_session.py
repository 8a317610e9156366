"""
End-to-end tests for RPPGSession driven by synthetic video.
Run with:  pytest tests/
"""

from __future__ import annotations

import math

import numpy as np
import pytest

from rppg_heartbeat import RPPGSession, SessionConfig
from rppg_heartbeat.csv_log import CsvSessionLog
from rppg_heartbeat.detectors import CascadeStrategy
from rppg_heartbeat.estimator import HeartRateEstimator
from rppg_heartbeat.region import Box
from rppg_heartbeat.sinks import CallbackSink, LoggingSink

SIZE = 64
FPS = 30.0
FACE = Box(8, 8, 48, 48)
GRAY = np.zeros((SIZE, SIZE), dtype=np.uint8)


def _timestamp(i: int) -> int:
    return int(round(i * 1000 / FPS))


def _pulse(i: int, bpm: float = 72.0) -> float:
    return math.sin(2 * math.pi * bpm / 60.0 * i / FPS)


def _frame(green: float, red: float = 150.0, blue: float = 80.0) -> np.ndarray:
    frame = np.empty((SIZE, SIZE, 3), dtype=np.float32)
    frame[:, :, 0] = blue
    frame[:, :, 1] = green
    frame[:, :, 2] = red
    return frame


def _config(**kwargs) -> SessionConfig:
    settings = dict(width=SIZE, height=SIZE, rescan_interval=100.0)
    settings.update(kwargs)
    return SessionConfig(**settings)


def _strategy(boxes=(FACE,)):
    return CascadeStrategy(lambda gray: list(boxes), SIZE, SIZE)


class Recorder:
    def __init__(self):
        self.results = []

    def __call__(self, timestamp, mean_bpm, min_bpm, max_bpm):
        self.results.append((timestamp, mean_bpm, min_bpm, max_bpm))


# ---------------------------------------------------------------------------
# Heart-rate recovery
# ---------------------------------------------------------------------------

class TestSessionEstimation:

    def test_green_recovers_72_bpm(self):
        recorder = Recorder()
        with RPPGSession(_config(), CallbackSink(recorder), _strategy()) as session:
            for i in range(int(15 * FPS)):
                session.process_frame(_frame(100 + 2 * _pulse(i)), GRAY, _timestamp(i))

            assert session.valid
            assert session.fps == pytest.approx(FPS, rel=0.01)
            assert abs(session.last_bpm - 72.0) <= 3.0

        assert len(recorder.results) >= 3
        timestamp, mean_bpm, min_bpm, max_bpm = recorder.results[-1]
        assert abs(mean_bpm - 72.0) <= 3.0
        assert min_bpm <= mean_bpm <= max_bpm

    def test_no_estimate_before_window_fills(self):
        recorder = Recorder()
        with RPPGSession(_config(), CallbackSink(recorder), _strategy()) as session:
            for i in range(int(5 * FPS)):
                session.process_frame(_frame(100 + 2 * _pulse(i)), GRAY, _timestamp(i))
            assert session.last_bpm is None
            assert session.last_trace is None
        assert recorder.results == []

    def test_no_face_no_samples(self):
        recorder = Recorder()
        with RPPGSession(_config(), CallbackSink(recorder), _strategy(())) as session:
            for i in range(int(12 * FPS)):
                assert session.process_frame(_frame(100.0), GRAY, _timestamp(i)) is None
            assert not session.valid
            assert len(session.buffer) == 0
        assert recorder.results == []

    def test_noise_validation_passes_clean_signal(self):
        recorder = Recorder()
        config = _config(noise_validation=True)
        with RPPGSession(config, CallbackSink(recorder), _strategy()) as session:
            for i in range(int(13 * FPS)):
                session.process_frame(_frame(100 + 2 * _pulse(i)), GRAY, _timestamp(i))
        assert recorder.results
        assert abs(recorder.results[-1][1] - 72.0) <= 3.0

    def test_ten_second_feed_reports_once(self):
        rng = np.random.default_rng(1)
        recorder = Recorder()
        with RPPGSession(_config(), CallbackSink(recorder), _strategy()) as session:
            for i in range(int(10 * FPS)):
                green = 100 + 2 * _pulse(i) + rng.normal(scale=0.2)
                session.process_frame(_frame(green), GRAY, _timestamp(i))

        assert len(recorder.results) == 1
        timestamp, mean_bpm, min_bpm, max_bpm = recorder.results[0]
        assert timestamp == _timestamp(int(10 * FPS) - 1)
        assert abs(mean_bpm - 72.0) <= 3.0
        assert min_bpm == max_bpm == mean_bpm

    @pytest.mark.parametrize("normalization", ["global", "per_segment"])
    def test_xminay_recovers_72_bpm(self, normalization):
        rng = np.random.default_rng(0)
        recorder = Recorder()
        config = _config(method="xminay", normalization=normalization)
        with RPPGSession(config, CallbackSink(recorder), _strategy()) as session:
            for i in range(int(13 * FPS)):
                frame = _frame(
                    100 + 2 * _pulse(i),
                    red=150 + rng.normal(scale=0.2),
                    blue=80 + rng.normal(scale=0.2),
                )
                session.process_frame(frame, GRAY, _timestamp(i))
            assert session.buffer.values().shape[1] == 3

        assert recorder.results
        for _, mean_bpm, _, _ in recorder.results:
            assert abs(mean_bpm - 72.0) <= 3.0


# ---------------------------------------------------------------------------
# Rescan handling
# ---------------------------------------------------------------------------

class TestSessionRescan:

    def test_rescan_jump_removed_by_denoise(self):
        left, right = Box(0, 16, 28, 32), Box(36, 16, 28, 32)
        current = [left]
        strategy = CascadeStrategy(lambda gray: list(current), SIZE, SIZE)
        config = _config(rescan_interval=5.0)

        with RPPGSession(config, None, strategy) as session:
            for i in range(int(12 * FPS)):
                if _timestamp(i) >= 5000:
                    current[0] = right
                p = 2 * _pulse(i)
                frame = _frame(100 + p)
                frame[:, SIZE // 2:, 1] = 160 + p
                session.process_frame(frame, GRAY, _timestamp(i))

            trace = session.last_trace
            markers = np.flatnonzero(session.buffer.markers())

        assert trace is not None
        assert len(markers) >= 1
        i = markers[0]
        assert trace.raw[i] - trace.raw[i - 1] > 40.0
        assert trace.denoised[i] - trace.denoised[i - 1] == pytest.approx(0.0, abs=1e-9)


# ---------------------------------------------------------------------------
# Lifecycle and configuration
# ---------------------------------------------------------------------------

class TestSessionLifecycle:

    def test_process_before_open(self):
        session = RPPGSession(_config(), None, _strategy())
        with pytest.raises(RuntimeError):
            session.process_frame(_frame(100.0), GRAY, 0)

    def test_wrong_frame_size(self):
        with RPPGSession(_config(), None, _strategy()) as session:
            with pytest.raises(ValueError):
                session.process_frame(np.zeros((32, 32, 3), np.float32), GRAY, 0)
            with pytest.raises(ValueError):
                session.process_frame(np.zeros((SIZE, SIZE), np.float32), GRAY, 0)

    def test_close_is_idempotent(self):
        session = RPPGSession(_config(), LoggingSink(), _strategy())
        session.open()
        session.open()
        session.close()
        session.close()
        with pytest.raises(RuntimeError):
            session.process_frame(_frame(100.0), GRAY, 0)

    def test_missing_cascade_file(self):
        session = RPPGSession(_config())
        with pytest.raises(ValueError):
            session.open()

    def test_csv_logs(self, tmp_path):
        prefix = tmp_path / "run"
        config = _config(log=True, log_prefix=str(prefix))
        with RPPGSession(config, None, _strategy()) as session:
            for i in range(int(12 * FPS)):
                session.process_frame(_frame(100 + 2 * _pulse(i)), GRAY, _timestamp(i))

        summary = (tmp_path / "run_bpm.csv").read_text().splitlines()
        detail = (tmp_path / "run_bpmDetailed.csv").read_text().splitlines()
        assert summary[0] == "time;mean;min;max"
        assert len(summary) > 1
        assert detail[0] == "time;bpm"
        assert len(detail) > 1

        signals = sorted(tmp_path.glob("run_signal_*.csv"))
        spectra = sorted(tmp_path.glob("run_estimation_*.csv"))
        assert signals and spectra
        assert signals[0].read_text().splitlines()[0] == "g;g_den;g_detr;g_avg"
        assert spectra[0].read_text().splitlines()[0] == "i;powerSpectrum"


class TestCsvSessionLog:

    def test_spectrum_rows_cover_band_and_upper_edge(self, tmp_path):
        estimator = HeartRateEstimator(time_base=0.001)
        spectrum = np.arange(300, dtype=float)
        low, high = estimator.band_bins(spectrum.size, FPS)

        with CsvSessionLog(str(tmp_path / "run")) as log:
            path = log.write_spectrum(1000, spectrum, low, high)

        rows = path.read_text().splitlines()[1:]
        indices = [int(row.split(";")[0]) for row in rows]
        assert indices == list(range(low, high + 1))
        assert rows[0] == f"{low};{float(low)}"

    def test_write_before_open(self, tmp_path):
        log = CsvSessionLog(str(tmp_path / "run"))
        with pytest.raises(RuntimeError):
            log.write_estimate(0, 72.0)


class TestSessionConfig:

    def test_defaults(self):
        config = SessionConfig(width=640, height=480)
        assert config.channels == 1
        assert SessionConfig(width=640, height=480, method="xminay").channels == 3

    @pytest.mark.parametrize("kwargs", [
        dict(width=0),
        dict(time_base=0.0),
        dict(sampling_interval=-1.0),
        dict(low_bpm=240.0, high_bpm=42.0),
        dict(method="red"),
        dict(normalization="sometimes"),
        dict(tracking="kalman"),
        dict(channel_order="yuv"),
    ])
    def test_invalid(self, kwargs):
        settings = dict(width=640, height=480)
        settings.update(kwargs)
        with pytest.raises(ValueError):
            SessionConfig(**settings)
