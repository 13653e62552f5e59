"""
Scheduled crown rotation.

- **job_registry.py**: GuildJobRegistry, a guild id -> recurring timer table.
  Installing replaces the guild's previous timer; cancelling stops future
  fires but never interrupts a cycle that already started.
- **job_scheduler.py**: JobScheduler.schedule_guild reads the guild's settings
  and installs or cancels its job.
- **executor.py**: RotationExecutor runs one cycle: strip the role from every
  holder, grant it to the leader, clear points, announce.
- **schedule_expression.py**: croniter-backed cron parsing and fire times.
- **templating.py**: single-pass rendering of the announcement template.
- **errors.py**: the rotation's exception types.
"""
