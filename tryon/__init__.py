"""Virtual try-on: image preparation client and generation fan-out proxy."""

__version__ = "1.0.0"
