"""HTTP API for the survey bot."""
