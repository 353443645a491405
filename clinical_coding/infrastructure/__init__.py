"""Infrastructure layer: configuration, logging and webhook signatures."""
