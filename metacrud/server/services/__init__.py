"""Request-scoped services shared by the API endpoints."""
