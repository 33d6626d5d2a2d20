"""
Stage completion markers.

Markers record that a (unit, stage) pair completed, so an interrupted
migration resumes without redoing finished work.

Implementations:
    - InMemoryMarkerStore: Testing and dry runs
    - FileMarkerStore: One marker file per (unit, stage)
    - SQLiteMarkerStore: Markers in a SQLite database
"""

from pgmigrate.markers.file import FileMarkerStore
from pgmigrate.markers.in_memory import InMemoryMarkerStore
from pgmigrate.markers.interface import MarkerStore, marker_key
from pgmigrate.markers.sqlite import SQLiteMarkerStore

__all__ = [
    "MarkerStore",
    "marker_key",
    "InMemoryMarkerStore",
    "FileMarkerStore",
    "SQLiteMarkerStore",
]
