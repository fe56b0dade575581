"""Product matching, confidence scoring and the update policy."""
