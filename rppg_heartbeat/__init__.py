"""
rPPG heartbeat: remote pulse measurement from face video.

Skin regions of a tracked face are averaged frame by frame; the resulting
colour signal is denoised, detrended, smoothed and band-passed, and the
dominant spectral peak gives the heart rate in BPM.
"""

from rppg_heartbeat.config import SessionConfig
from rppg_heartbeat.estimator import BpmResult
from rppg_heartbeat.session import RPPGSession

__version__ = "0.1.0"
__author__ = "rppg_heartbeat"

__all__ = ["BpmResult", "RPPGSession", "SessionConfig"]
