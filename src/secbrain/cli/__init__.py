"""
Command-line surface.

Components:
- bootstrap.py: composition root (settings -> stores -> gateway -> feature modules)
- commands.py: slash-command registry used by the console connector
- main.py: entrypoint (`secbrain` console script)
"""
