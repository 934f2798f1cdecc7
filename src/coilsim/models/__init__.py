"""Pydantic models for coilsim."""
