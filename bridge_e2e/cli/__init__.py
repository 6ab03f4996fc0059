"""bridge-e2e command-line interface."""
