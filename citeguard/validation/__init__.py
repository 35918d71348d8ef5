"""Consensus, parsing, prompts and the Tier 2 / Tier 3 panels."""
