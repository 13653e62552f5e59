"""Chat-platform access used by the rotation."""
