"""Deformation graph optimisation, sparse Jacobians and surfel mapping utilities."""

__version__ = "0.1.0"