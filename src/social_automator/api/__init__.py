"""HTTP API for Social Media Automator."""
