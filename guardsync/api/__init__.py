"""Gateway API and pydantic schemas."""
