# =============================================================================
# Application Configuration — Pydantic Settings
# =============================================================================
#
# All tunable behaviour of the assistant lives here: which scorer ranks the
# corpus, how many chunks survive retrieval, how much context reaches the
# generator, and which LLM backend writes the narrative sections.
#
# Pydantic Settings loads values in this priority order (highest first):
#   1. Environment variables (e.g., `SCORER_TYPE=embedding`)
#   2. Values from the .env file
#   3. Default values defined below
#
# USAGE:
#   from budget_assistant.config import settings
#   print(settings.retrieval_top_k)
# =============================================================================

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Defaults run the lexical scorer against the bundled demo corpus, so the
    service starts without any API keys. Generation still needs an LLM key.
    """

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    app_name: str = "Budget 2025 Report Assistant"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    report_title: str = "Budget 2025 Briefing Report"

    # -------------------------------------------------------------------------
    # Corpus
    # -------------------------------------------------------------------------
    # JSON file holding the evidence chunks. Loaded exactly once at startup;
    # a missing or malformed file stops the service from starting.
    # -------------------------------------------------------------------------
    corpus_path: str = "data/budget_corpus_2025.json"

    # -------------------------------------------------------------------------
    # Relevance Scoring
    # -------------------------------------------------------------------------
    # scorer_type selects the strategy:
    #   - "lexical":   distinct query words found in the chunk (no API calls)
    #   - "embedding": cosine similarity against precomputed chunk embeddings
    #
    # When the embedding scorer is unavailable (API down, timeout), the
    # orchestrator re-runs retrieval with the lexical scorer if
    # scoring_fallback_to_lexical is set. The scorer itself never falls back.
    # -------------------------------------------------------------------------
    scorer_type: Literal["lexical", "embedding"] = "lexical"
    scoring_fallback_to_lexical: bool = True

    # Words ignored by the lexical scorer. Besides English function words
    # this includes terms that appear in nearly every budget chunk and so
    # carry no ranking signal.
    lexical_stop_words: list[str] = [
        "and", "are", "but", "can", "did", "does", "for", "from", "has",
        "have", "how", "into", "its", "not", "our", "the", "their", "them",
        "there", "these", "this", "was", "were", "what", "when", "where",
        "which", "who", "why", "will", "with", "would", "you", "your",
        "about", "tell", "budget", "budgets", "tax", "taxes", "government",
    ]

    # -------------------------------------------------------------------------
    # Retrieval
    # -------------------------------------------------------------------------
    # retrieval_min_score: chunks scoring strictly below this are discarded.
    #   None means "use the scorer's own default" (lexical: 1 matching word,
    #   embedding: 0.03 cosine similarity).
    # retrieval_top_k: chunks kept after ranking.
    # max_context_chars: cap on the joined context handed to the generator.
    # -------------------------------------------------------------------------
    retrieval_top_k: int = 5
    retrieval_min_score: float | None = None
    max_context_chars: int = 5000

    # -------------------------------------------------------------------------
    # Embeddings — OpenAI-compatible API
    # -------------------------------------------------------------------------
    # The SAME model must embed the corpus offline (scripts/embed_corpus.py)
    # and the queries online, otherwise similarity scores are meaningless.
    # -------------------------------------------------------------------------
    openai_api_key: str = ""
    embedding_base_url: str | None = None
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int | None = None
    embedding_batch_size: int = 100
    embedding_timeout_seconds: float = 10.0

    # -------------------------------------------------------------------------
    # LLM Configuration — Multi-Provider
    # -------------------------------------------------------------------------
    #   - "anthropic": Claude via native Anthropic SDK
    #   - "openai_compatible": Any OpenAI-compatible API
    #
    # generation_max_attempts: total tries for the narrative sections. After
    # the last failed attempt the report falls back to the "no evidence"
    # template; a blank report is never returned.
    # -------------------------------------------------------------------------
    llm_provider: str = "anthropic"  # "anthropic" or "openai_compatible"
    llm_base_url: str | None = None
    llm_api_key: str | None = None
    anthropic_api_key: str = ""
    llm_model: str = "claude-sonnet-4-6"
    llm_temperature: float = 0.1
    llm_max_tokens: int = 2048
    generation_timeout_seconds: float = 45.0
    generation_max_attempts: int = 2

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Create and cache a Settings instance.

    In tests, override with FastAPI's dependency_overrides or patch the
    attributes of the module-level `settings` object directly.
    """
    return Settings()


settings = Settings()
