"""Vision-to-artifacts lane pipeline and provider job queue."""

__version__ = "0.1.0"
