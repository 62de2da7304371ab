"""
fabricbot - moderation and utility bot for the Fabric Discord community

Core Components:

- **Version checks**: Polls the Minecraft launcher manifest and the Mojang
  issue tracker and announces newly published versions to configured
  channels, publishing them in announcement channels.
- **Infraction timers**: Schedules the automatic reversal of temporary
  mutes and bans, cancellable by infraction ID when a moderator pardons early,
  and rebuilt from the database whenever the bot reconnects.
- **Persistence**: SQLite storage of infractions through a single aiosqlite
  connection.

Usage:
    from fabricbot.main import main
    main()
"""
