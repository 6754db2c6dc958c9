"""Core domain: identity hashing, models, ranking and the record store."""
