"""
secbrain: offline-first persistence core for a personal productivity dashboard.

Subsystems:
- core/: ports, errors, record kinds, identity context, app state
- storage/: fallback store, remote store adapters, persistence gateway, counters, migration, sync
- auth/: credential service + sign-in/sign-out session
- projects/: project -> task -> subtask tree
- cli/ + connectors/: composition root and interactive console
"""

__version__ = "0.1.0"
