# =============================================================================
# RigVeda Q&A Agent
# =============================================================================
# Multi-agent retrieval-augmented question answering over the RigVeda:
#   - agents/: gate → search/analyse loop → translate → generate, wired as
#     a LangGraph state machine
#   - services/: LLM providers, embeddings, verse index, JSON extraction
#   - api/: FastAPI routes (JSON and Server-Sent Events)
# =============================================================================
