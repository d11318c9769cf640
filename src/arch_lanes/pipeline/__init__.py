"""Vision-to-artifacts lane pipeline and its run/lane state store."""
