"""retake-trim: remove dead air and redundant takes from recorded video."""

__version__ = "0.1.0"
