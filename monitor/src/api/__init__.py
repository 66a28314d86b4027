"""Read/control HTTP API for the monitor daemon."""
