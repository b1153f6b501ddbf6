"""Web interface for the Sketch Editor."""
