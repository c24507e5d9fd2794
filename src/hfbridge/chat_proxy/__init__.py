"""Chat proxy exposing an OpenAI-compatible interface atop Hugging Face text generation.

Streaming responses are synthesized from one complete upstream generation.
"""

__all__ = []
