"""HTTP API of the dialogue engine."""
