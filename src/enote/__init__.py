"""
ENote backend - storage and command layer for a desktop note-taking app.

Notebooks, notes, tags and an automatically maintained edit history are kept
in a relational store (SQLite by default) and exposed to the UI through a
remote-procedure-style command server.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("enote-backend")
except PackageNotFoundError:
    __version__ = "0.3.0"
