"""File-format parsers for provider session data."""
