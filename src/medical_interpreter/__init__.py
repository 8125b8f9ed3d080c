"""Realtime medical interpretation: session events, action detection and webhook delivery."""

__version__ = "0.1.0"
