"""Client for a running status server."""
