"""Migration orchestration and recovery.

This module sequences export, import, verification, and finalization,
and restores the destination store from verified backups.
"""
