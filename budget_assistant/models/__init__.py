# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Wire-level request/response schemas, separate from the pipeline's internal
# dataclasses (agents/assembler.py).
# =============================================================================
