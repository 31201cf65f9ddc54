"""Default configuration values."""
