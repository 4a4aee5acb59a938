"""wg-tracker: file decision issues from working group resolutions and bugs from decisions."""

__version__ = "0.1.0"
