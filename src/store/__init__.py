"""Destination store layer.

This module owns the embedded store schema, scoped connections, verified
backups, and the portable snapshot and report files on disk.
"""
