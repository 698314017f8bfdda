"""Rendering of configuration files from the packaged templates."""
