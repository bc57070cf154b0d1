"""Sheetwriter fills ``.xlsx`` templates with report data."""

__version__ = "1.0.0"
