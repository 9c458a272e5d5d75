"""Snapshot import pipeline.

This module validates snapshot records and writes them into the
destination store in atomic batches with duplicate detection.
"""
