"""Read text, images and figure layouts from PDF objects held in memory."""

__version__ = "0.1.0"