"""Configuration, logging, errors and resilience helpers."""
