"""toolchat — tool-augmented chat over an OpenAI-compatible backend."""

__version__ = "1.0.0"
