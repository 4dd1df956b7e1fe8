"""Pydantic models for CRM entities and request payloads."""
