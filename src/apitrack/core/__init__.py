"""Core primitives: errors, logging, settings, storage, models and scheduling."""
