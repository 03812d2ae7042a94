"""Project tool for MitiruEngine games: manifests, engine cache, lint, inspectors and subsystem launchers."""

__version__ = "0.7.0"