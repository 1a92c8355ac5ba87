"""Workflow templates, objective matching and decision collection."""
