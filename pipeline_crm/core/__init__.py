"""Core configuration, errors, session and result types."""
