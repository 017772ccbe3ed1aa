"""Interactive pan/zoom cropping of cover images into a fixed, size-capped square."""

__version__ = "1.0.0"
