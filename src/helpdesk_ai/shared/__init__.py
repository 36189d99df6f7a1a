"""
Shared Kernel Module
====================

Shared infrastructure used by every bounded context (Responder and
Notifications).

DO NOT add business logic from Responder or Notifications to the shared
kernel.
"""
