"""
Vitals Monitor – fingertip PPG vitals estimation from camera frames.
Press a fingertip against the lens (torch on); the system extracts the
photoplethysmography (PPG) signal from the red channel and estimates heart
rate, SpO2, a blood-pressure figure and an arrhythmia flag.
"""

from vitals_monitor.processor import PPGProcessor

__version__ = "0.1.0"
__author__ = "vitals_monitor"

__all__ = ["PPGProcessor"]
