"""Configuration, in-memory cluster objects, discovery and caching building blocks for Kubernetes metrics."""

__version__ = "0.1.0"