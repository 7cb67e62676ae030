"""Message surface for UI collaborators."""
