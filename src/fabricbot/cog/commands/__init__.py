"""
Slash command cogs:

- **version_check_cmds.py**: Background version checker lifecycle,
  /versioncheck, and the non-production /mc-url and /jira-url overrides.
- **infraction_cmds.py**: Rebuilds infraction timers on every connect,
  schedules newly created infractions, and provides /pardon.
"""
