"""Service layer: card operations, admission control, LLM access."""
