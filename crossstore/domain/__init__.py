"""Domain: error taxonomy and enums shared by all components."""
