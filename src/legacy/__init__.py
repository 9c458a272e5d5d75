"""Legacy store export.

This module reads records from the previously authoritative managed store,
normalizes them, and writes immutable portable snapshots.
"""
