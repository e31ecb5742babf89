# =============================================================================
# Agents Package — LangGraph Multi-Agent Orchestration
# =============================================================================
#   - orchestrator.py: LangGraph graph — gate check, search/analyse loop,
#     translation, streaming generation
#   - searcher.py: Sanskrit search-term generation + verse retrieval
#   - analyzer.py: verse-by-verse relevance judgement, follow-up terms
#   - translator.py: Sanskrit → English, one LLM call per verse
#   - generator.py: grounded answer synthesis (stream + single shot)
#   - validation.py: coerces untrusted agent output into typed envelopes
#   - evidence.py: deduplicated accumulator of relevant verses
#   - types.py: passages, envelopes, progress events, trace
# =============================================================================
