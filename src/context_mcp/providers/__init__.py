"""Token-count providers."""
