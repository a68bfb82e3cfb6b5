"""Core: settings, constants, and the process-wide component registry."""
