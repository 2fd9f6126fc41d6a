"""
vacancysync - Reservation workbook to remote store synchronization service.

Scans facility workbooks on a shared store, extracts monthly reservation
counts, syncs them to a PostgREST table and reports changes.
"""

__version__ = "1.0.0"
