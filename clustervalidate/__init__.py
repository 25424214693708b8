"""End-to-end validation harness for RKE2 clusters."""

__version__ = "0.1.0"
