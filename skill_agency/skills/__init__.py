"""Skill definitions, parameter validation and dry-run planning."""
