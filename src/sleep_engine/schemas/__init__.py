"""Pydantic schemas for engine inputs and outputs."""
