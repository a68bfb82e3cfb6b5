"""Shared utilities and telemetry used by every layer."""
