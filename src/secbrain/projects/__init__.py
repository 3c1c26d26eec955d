"""
Projects subsystem.

Components:
- models.py: Project aggregate, recursive Task, Client (document <-> dataclass)
- tree.py: iterative tree walk, lookup, removal, cascade and progress helpers
- service.py: ProjectTaskTree (one owner's projects, persisted through the gateway)
"""
