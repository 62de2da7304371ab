"""
Utility functions and helpers for fabricbot.

- **logger.py**: Centralized logging configuration with colored console output
  through prompt_toolkit, per-session rotating log files, and suppression of
  noisy library loggers (Discord internals, aiohttp, websockets).

- **discord_utils.py**: Small stateless Discord helpers: role-rank checks for
  command gating, channel resolution from configured IDs, and sending a
  message with an optional publish step for announcement channels.
"""
