"""Role routers (public / worker)."""
