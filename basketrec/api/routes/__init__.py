"""API routers: suggestions and rule management."""
