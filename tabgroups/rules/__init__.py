"""Custom rule resolution, validation and storage."""
