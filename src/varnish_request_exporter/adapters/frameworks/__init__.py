"""Framework adapters serving the metrics endpoint."""
