"""Progressive media-loading scheduler for chat image attachments."""

__version__ = "0.3.0"
