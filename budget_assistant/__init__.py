# =============================================================================
# Budget 2025 Report Assistant
# =============================================================================
# Answers questions about the Budget 2025 documents with a structured,
# evidence-gated report: retrieve relevant chunks, decide whether the
# evidence is sufficient, and only then let an LLM write the narrative.
#
# Package structure:
#   budget_assistant/
#   ├── api/          → FastAPI route handlers and dependencies (/ask)
#   ├── agents/       → LangGraph pipeline: retrieve → gate → write → assemble
#   ├── models/       → Pydantic V2 request/response schemas
#   └── services/     → Corpus index, relevance scorers, embeddings, LLM
#                        providers, report rendering
# =============================================================================
