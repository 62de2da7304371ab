"""Plain data types: Discord IDs, infractions and their reversals, version feed records."""
