"""Streaming ingestion pipeline.

This module streams remote JSON arrays, normalizes each element, and
writes unified records to the document store in idempotent batches.
"""
