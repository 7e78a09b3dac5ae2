"""Qt integration for the media-loading scheduler."""
