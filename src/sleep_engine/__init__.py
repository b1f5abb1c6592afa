"""Sleep architecture engine: scoring, stage prediction and cycle timelines."""

__version__ = "0.1.0"
