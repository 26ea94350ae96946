"""Foundation layer: errors, JSON types, and settings."""
