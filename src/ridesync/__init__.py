"""Trip lifecycle coordination between customer and driver apps."""

__version__ = "0.1.0"
