"""
Connectors: ways for a user to drive the app.

Components:
- console_connector.py: interactive REPL for slash commands + console completion prompt
"""
