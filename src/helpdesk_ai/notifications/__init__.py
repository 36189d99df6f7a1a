"""
Notifications Module
====================

Bounded context for email notifications about ticket events.

Responsibilities:
- Persist a queue of pending notifications
- Deliver them in batches with a bounded retry count
- Keep overlapping batch runs from sending the same entry twice
"""
