"""ask command-line interface."""
