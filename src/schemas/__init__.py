"""Pydantic schemas shared by the API and notification payloads."""
