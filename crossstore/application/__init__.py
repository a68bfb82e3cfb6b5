"""Application layer: coordination services, DTOs, and store ports."""
