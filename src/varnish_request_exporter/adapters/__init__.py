"""Adapters connecting the core to varnishncsa and HTTP servers."""
