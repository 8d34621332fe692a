"""Source package marker for the marketplace chat service."""
