"""Browser host interface and implementations."""
