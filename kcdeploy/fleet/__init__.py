"""Multi-host deployment over SSH."""
