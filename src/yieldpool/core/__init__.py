"""Core domain types, errors and capabilities."""
