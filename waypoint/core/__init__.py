"""Core domain: persistence, schemas and services."""
