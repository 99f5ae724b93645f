"""Shared foundation code used by every geovectorize tool."""
