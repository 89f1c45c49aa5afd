"""
schemas/ — Pydantic request/response models for the CRM board API

Provides input validation, auto-generated OpenAPI docs, and
consistent error messages across services and endpoints.
"""
