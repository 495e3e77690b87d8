"""Quantum Cash Flow Lattice feature flag engine."""

__version__ = "1.0.0"
