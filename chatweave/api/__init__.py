"""HTTP query surface for the chat corpus."""
