"""Marks Editor: batch score-editing sessions with undo/redo and minimal-diff saves."""
