"""
AI Responder Module
===================

Bounded context for AI-assisted replies to customer comments.

Responsibilities:
- Reconstruct the conversation from a ticket's event log
- Retrieve tenant-scoped KB articles by semantic similarity
- Generate a candidate reply and evaluate it against a quality rubric
- Post the reply or hand the ticket off to a human agent
- Index KB articles into the vector store
"""
