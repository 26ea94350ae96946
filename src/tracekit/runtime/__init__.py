"""Runtime layer: tracing, export, logging, and retry."""
