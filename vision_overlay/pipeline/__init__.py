"""
Frame Analysis Pipeline.

Runs convert, infer, compose and publish for each camera frame.
"""

from .orchestrator import FrameAnalysisPipeline
