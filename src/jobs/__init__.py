"""Ingestion job queue.

This module runs ingestion jobs on a bounded worker pool with retry,
fixed backoff, and dead-letter persistence for exhausted jobs.
"""
