"""HTTP boundary for the conversation memory service."""
