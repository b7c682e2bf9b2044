"""
chronicle -- Story continuity engine.

Builds a per-entity knowledge base ("bible") from narrative scene documents
and flags contradictions between newly written and established facts.

Modules:
    engine          Scan entry points and conflict resolution actions.
    extractor       Tier 1 pattern extraction over mention windows.
    llm_client      Tier 2 classifier client (Anthropic / Ollama).
    reconciler      Pure merge of facts into entity records.
    conflict_store  Conflict list merge / dismiss / accept.
"""

__version__ = "0.1.0"
