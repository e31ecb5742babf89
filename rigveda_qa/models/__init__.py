# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the HTTP API. Internal pipeline data uses the
# dataclasses in agents/types.py; these models are only the public contract.
# =============================================================================
