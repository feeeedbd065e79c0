# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - ask.py: POST /ask, the report endpoint
#   - deps.py: corpus index / scorer / LLM dependencies
# =============================================================================
