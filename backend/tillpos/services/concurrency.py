# Overview: Row locking helper for read-modify-write updates on contended rows.

from __future__ import annotations


def lock_for_update(query):
    """
    Request a row lock for the rows selected by query.

    The register cash balance is the only contended field; it is updated as
    read-modify-write under this lock.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()
