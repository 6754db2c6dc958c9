"""
chatweave: a deduplicated, searchable corpus of exported AI chat history.

Ingests normalized ChatGPT, Claude, Gemini and Grok transcripts into a
SQLite store, ranks them under keyword/regex search and consolidates
related conversations through embedding similarity.
"""

__version__ = "0.1.0"
