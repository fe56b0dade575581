"""Domain models and enums shared across the pipeline."""
