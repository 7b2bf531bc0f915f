"""Device transports."""

from flapboard.transports.vestaboard import VestaboardClient, validate_matrix

__all__ = ["VestaboardClient", "validate_matrix"]
