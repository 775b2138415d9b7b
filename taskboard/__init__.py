"""
Backend package for the Join task board.

Holds the relational data layer for users, contacts and tasks plus the
one-shot pipeline that moves the legacy Firebase realtime-database export
into it.
"""
