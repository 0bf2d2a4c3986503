"""HTTP service package: FastAPI app, pydantic schemas and the session store."""
