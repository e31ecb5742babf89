# =============================================================================
# Application Configuration — Pydantic Settings
# =============================================================================
#
# DESIGN DECISION: Pydantic V2's `BaseSettings` for configuration.
# Settings load in this priority order (highest first):
#   1. Environment variables (e.g., `LLM_MODEL=...`)
#   2. Values from the .env file
#   3. Default values defined below
#
# USAGE:
#   from rigveda_qa.config import settings
#   print(settings.max_search_iterations)
# =============================================================================

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Defaults are tuned for local development against the bundled corpus
    file with the keyword index. Switch VERSE_INDEX_BACKEND to "chroma"
    once the corpus has been embedded with scripts/index_corpus.py.
    """

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    app_name: str = "RigVeda Q&A Agent"
    app_version: str = "0.1.0"
    debug: bool = True

    # -------------------------------------------------------------------------
    # API Keys — External Services
    # -------------------------------------------------------------------------
    # ANTHROPIC_API_KEY: Claude (all four agent roles)
    # OPENAI_API_KEY: embeddings, or the LLM when using openai_compatible
    # -------------------------------------------------------------------------
    anthropic_api_key: str = ""
    openai_api_key: str = ""

    # -------------------------------------------------------------------------
    # LLM Configuration — Multi-Provider
    # -------------------------------------------------------------------------
    # Providers:
    #   - "anthropic": Claude via native Anthropic SDK
    #   - "openai_compatible": any OpenAI-compatible API (OpenAI, DeepSeek,
    #     Qwen, a local vLLM/Ollama server, ...)
    # -------------------------------------------------------------------------
    llm_provider: str = "anthropic"  # "anthropic" or "openai_compatible"
    llm_base_url: str | None = None  # Only needed for openai_compatible
    llm_api_key: str | None = None   # Overrides provider-specific key if set
    llm_model: str = "claude-sonnet-4-6"
    llm_temperature: float = 0.1
    llm_max_tokens: int = 4096

    # Per-role sampling temperatures. Judgement calls (search terms,
    # relevance, translation) stay low; answer prose gets more room.
    search_term_temperature: float = 0.3
    analysis_temperature: float = 0.3
    translation_temperature: float = 0.3
    generation_temperature: float = 0.6

    # -------------------------------------------------------------------------
    # Search/Analyse Loop
    # -------------------------------------------------------------------------
    # max_search_iterations: hard bound on searcher/analyzer rounds. Every
    #   round counts, including ones where the searcher came back empty.
    # min_evidence_verses: the loop stops as soon as this many distinct
    #   relevant verses have been accumulated.
    # search_top_k: verses requested from the index per search.
    # -------------------------------------------------------------------------
    max_search_iterations: int = 5
    min_evidence_verses: int = 5
    search_top_k: int = 5
    search_min_score: float = 0.0

    # -------------------------------------------------------------------------
    # Verse Index — Pluggable Backend
    # -------------------------------------------------------------------------
    #   - "keyword": in-memory token-overlap search over the corpus file
    #   - "chroma": ChromaDB cosine search over pre-computed embeddings
    # -------------------------------------------------------------------------
    verse_index_backend: str = "keyword"  # "keyword" or "chroma"
    corpus_path: str = "data/rigveda.json"
    chroma_url: str | None = None          # Client/server mode
    chroma_persist_dir: str | None = None  # Persistent in-process mode
    chroma_collection: str = "rigveda_verses"

    # -------------------------------------------------------------------------
    # Embedding Configuration
    # -------------------------------------------------------------------------
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 512
    embedding_batch_size: int = 100
    embedding_base_url: str | None = None
    # EmbeddingGemma-style "task: search result | query: " prompts
    embedding_task_prompts: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Create and cache a Settings instance.

    In tests, override the FastAPI dependency instead:
        app.dependency_overrides[get_settings] = lambda: Settings(debug=False)
    """
    return Settings()


# ---------------------------------------------------------------------------
# Module-level convenience instance
# ---------------------------------------------------------------------------
settings = Settings()
