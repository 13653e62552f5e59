"""
Crowncord - crown role rotation for Discord servers

Members earn points for activity in a server. On a schedule chosen per
server (a cron expression), the member with the most points receives the
server's "crown" role, previous holders lose it, and the leaderboard resets.

Core Components:

- **rotation.job_registry**: One recurring asyncio timer per guild, replaced or
  cancelled atomically
- **rotation.job_scheduler**: Reads guild settings and decides whether a
  guild's job should exist
- **rotation.executor**: One strip / grant / clear-points cycle with
  failure isolation
- **repositories**: aiosqlite-backed guild settings and points leaderboard
- **cog**: py-cord listeners and slash commands

Usage:
    from crowncord.main import main
    main()
"""
