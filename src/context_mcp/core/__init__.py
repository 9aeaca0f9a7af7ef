"""Framework layer: configuration, errors, metrics and startup checks."""
