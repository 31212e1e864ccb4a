"""Default walkthrough scripts (JSON resources)."""
