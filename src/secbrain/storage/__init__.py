"""
Persistence subsystem.

Components:
- codec.py: record stamping, document keys, local ids, client-side ordering
- fallback_store.py: on-device SQLite key/value store + outbox of pending remote writes
- remote_store.py: httpx client for the remote document API
- offline.py: always-unreachable remote store used when nothing is configured
- gateway.py: PersistenceGateway, the one API feature modules talk to
- counters.py: per-owner `next*Id` counters and the project id policy
- migration.py: anonymous -> authenticated ownership migration
- sync.py: background loop replaying pending writes
"""
