"""ALVA and Bob: two LLM personas trading quotations in time with client-side speech."""

__version__ = "0.1.0"
