# =============================================================================
# Agents Package — Evidence-Gated Report Pipeline
# =============================================================================
#   - retriever.py: threshold / rank / top-K / context cap
#   - gate.py: SUFFICIENT vs INSUFFICIENT decision
#   - writer.py: grounded LLM generation of the narrative sections
#   - assembler.py: fixed report template, citations, audit footer
#   - orchestrator.py: LangGraph graph wiring the steps together
# =============================================================================
