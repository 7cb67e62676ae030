"""Group assignment engine: tab events, locks and grouping operations."""
