"""Card enrichment pipeline.

Stages (classify, categorize, metadata, renderables) and the orchestrator
that runs them. Modules are imported directly; nothing is re-exported here.
"""
