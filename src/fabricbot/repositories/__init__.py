"""Table-level repositories operating on an open aiosqlite connection."""
