"""Citeguard: multi-tier legal citation validation service."""
