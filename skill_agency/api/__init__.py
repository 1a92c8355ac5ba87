"""HTTP API for the orchestration service."""
