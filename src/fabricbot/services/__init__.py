"""
Long-running services.

- **version_check_service.py**: Polls the Minecraft launcher manifest and the
  Mojang issue tracker, diffs against the previous poll, and announces new
  versions to the configured channels.
"""
