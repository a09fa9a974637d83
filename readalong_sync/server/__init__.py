"""HTTP server package: FastAPI app over the in-memory book store."""
