"""Serve Twitter user timelines as RSS feeds."""
