"""
Authentication subsystem.

Components:
- credentials.py: credential services (HTTP identity API, offline) + friendly error messages
- session.py: AuthSession (sign-in with ownership migration, sign-out, migration retry)
"""
