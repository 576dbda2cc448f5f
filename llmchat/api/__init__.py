"""FastAPI application, dependencies, middleware and routes."""
