"""Bundled walkthrough content."""
