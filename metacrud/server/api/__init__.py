"""HTTP endpoints: health checks and the entity dispatcher."""
