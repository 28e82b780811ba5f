"""Load matching service: finds, scores and tracks load suggestions for trips."""

__version__ = "0.1.0"
