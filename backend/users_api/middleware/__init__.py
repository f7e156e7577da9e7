"""HTTP middleware (request context, access logging)."""
