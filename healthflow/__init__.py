"""HealthFlow clinic assistant core: state store, persistence and AI layer."""

__version__ = "0.1.0"
