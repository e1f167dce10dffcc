"""REST API for the experimentation engine."""
