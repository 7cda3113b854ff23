"""HTTP layer: app factory, routers and routes."""
