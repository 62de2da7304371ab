"""
Scheduled execution of time-delayed moderation actions.

- **delay_scheduler.py**: Min-heap backed one-shot job scheduler running on
  the asyncio loop. Jobs are identified by integer handles, can be cancelled
  individually or all at once, and past-due delays fire immediately.

- **infraction_timers.py**: Maps infraction IDs to scheduler handles. When a
  temporary ban or mute expires it lifts the ban or removes the mute role,
  marks the infraction inactive and posts a notice to the moderator log.
  Supports early pardons and a full reset-and-reschedule from the database
  after reconnects.
"""
