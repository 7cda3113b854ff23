"""Ingestion domain logic over raw SQL."""
