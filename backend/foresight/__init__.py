"""Foresight: organization forecasting, predictions, leaderboards and AI-assisted authoring."""

__version__ = "0.4.0"
