"""Integration tests that run bedrockci as a subprocess."""
