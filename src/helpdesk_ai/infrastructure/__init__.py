"""
Infrastructure
==============

Provider-facing clients: database engine, LLM client, vector store.
"""
