"""Pydantic request/response schemas for the OpsDesk API."""
