"""HTTP surface: FastAPI app, routes and middleware."""
