"""Hybrid retrieval and SQL-safety backend for a multi-tenant RAG service."""

__version__ = "0.1.0"
