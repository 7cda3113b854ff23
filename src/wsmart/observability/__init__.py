"""Logging, correlation ids and redaction."""
