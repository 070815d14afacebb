"""Infrastructure layer: configuration, logging, persistence and provider clients."""
