# =============================================================================
# Services Package — Backends the Agents Run On
# =============================================================================
#   - llm.py: Multi-provider LLM abstraction (Anthropic, OpenAI-compatible)
#   - embedder.py: verse and search-term embeddings (OpenAI-compatible API)
#   - verse_index.py: Pluggable verse index protocol (keyword, Chroma)
#   - json_parser.py: Tolerant JSON extraction from LLM output
# =============================================================================
