"""
Configuration management for fabricbot.

- **app_configuration.py**: File-locked YAML configuration loader for global
  settings: the community guild ID, role and channel IDs, version check
  destinations, feed URLs and intervals, and the database path. Falls back
  gracefully on missing or malformed config files.
"""
