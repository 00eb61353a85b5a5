"""
Feed Service.

Ingests drop-shipping product feeds, normalizes them into a unified
catalog and tracks synchronisation work as jobs.
"""
