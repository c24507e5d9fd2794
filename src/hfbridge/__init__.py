"""
hfbridge package.

Provides:
- OpenAI-compatible chat proxy in front of the Hugging Face Inference API
- Synthesized SSE streaming for upstreams without token streaming
"""
