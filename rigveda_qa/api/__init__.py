# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - ask.py: POST /ask (JSON) and POST /ask/stream (Server-Sent Events)
# =============================================================================
