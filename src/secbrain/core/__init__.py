"""
Core contracts shared by every subsystem.

Components:
- ports.py: Protocols for the remote store, credential service and completion prompt
- errors.py: exception taxonomy
- records.py: collection names and record kinds (tagged union over a shared base record)
- identity.py: IdentityContext (current owner id + change notifications)
- state.py: AppState wiring container
"""
