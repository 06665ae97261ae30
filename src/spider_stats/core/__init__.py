"""Core types shared by every layer: config, errors, models, protocols."""
