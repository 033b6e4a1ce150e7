"""HTTP transport for the status controller."""
