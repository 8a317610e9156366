"""
Unit tests for VideoSource, the result sinks and the CLI helpers.
Run with:  pytest tests/
"""

from __future__ import annotations

import logging

import pytest

import main
from rppg_heartbeat.camera import VideoSource
from rppg_heartbeat.sinks import CallbackSink, LoggingSink


class TestVideoSource:

    def test_digit_string_is_camera_index(self):
        src = VideoSource("1")
        assert src.source == 1
        assert not src.is_file

    def test_path_is_file(self):
        assert VideoSource("clip.mp4").is_file

    def test_read_before_open(self):
        with pytest.raises(RuntimeError):
            VideoSource("clip.mp4").read_frame()

    def test_missing_file(self, tmp_path):
        src = VideoSource(str(tmp_path / "missing.avi"))
        with pytest.raises(RuntimeError):
            src.open()

    def test_close_without_open(self):
        VideoSource(0).close()


class TestSinks:

    def test_callback_sink(self):
        seen = []
        CallbackSink(lambda *args: seen.append(args)).emit(1000, 72.0, 70.0, 74.0)
        assert seen == [(1000, 72.0, 70.0, 74.0)]

    def test_logging_sink(self, caplog):
        with caplog.at_level(logging.INFO, logger="rppg_heartbeat.result"):
            LoggingSink().emit(2000, 75.0, 72.0, 78.0)
        assert "BPM=75.0" in caplog.text


class TestCli:

    def test_parse_defaults(self):
        args = main.parse_args(["--face-cascade", "face.xml"])
        assert args.source == "0"
        assert args.method == "green"
        assert args.tracking == "cascade"
        assert args.log_prefix is None

    def test_build_config(self):
        args = main.parse_args([
            "--face-cascade", "face.xml",
            "--eye-cascade", "eye.xml",
            "--method", "xminay",
            "--log-prefix", "out/run",
            "--noise-validation",
        ])
        config = main.build_config(args, 320, 240)
        assert (config.width, config.height) == (320, 240)
        assert config.face_classifier == "face.xml"
        assert config.left_eye_classifier == config.right_eye_classifier == "eye.xml"
        assert config.channels == 3
        assert config.log and config.log_prefix == "out/run"
        assert config.noise_validation

    def test_bad_resolution(self):
        args = main.parse_args(["--face-cascade", "face.xml", "--resolution", "big"])
        assert main.run(args) == 1

    def test_face_cascade_required(self):
        with pytest.raises(SystemExit):
            main.parse_args([])
