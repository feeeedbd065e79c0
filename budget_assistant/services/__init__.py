# =============================================================================
# Services Package — Shared Capabilities
# =============================================================================
#   - corpus.py: load-once, read-only corpus index
#   - scoring.py: pluggable relevance scorers (lexical, embedding)
#   - embedder.py: OpenAI-compatible embedding generation
#   - llm.py: multi-provider LLM abstraction (Anthropic, OpenAI-compatible)
#   - renderer.py: markdown rendering of a finished report
# =============================================================================
