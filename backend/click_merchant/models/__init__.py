"""Pydantic models for requests, responses and stored records."""
