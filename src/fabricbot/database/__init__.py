"""
Database package for fabricbot.

Public API:
    - db_connection: Global ConnectionManager wrapping one aiosqlite connection
    - SchemaManager: Creates the infractions table and indexes
"""
