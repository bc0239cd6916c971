"""Shared utilities: configuration, logging, LLM client and retry helpers."""
