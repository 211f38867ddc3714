"""Houston February 2021 blackout analysis: night-light change detection,
residential impact estimation and census-tract income comparison."""

__version__ = "0.1.0"
