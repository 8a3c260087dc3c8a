"""rewardstreams: epoch-bucketed reward stream accounting."""

__version__ = "0.1.0"
