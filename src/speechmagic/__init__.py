"""
speechmagic: Text-to-Speech Generation Service.

A FastAPI service that turns user-submitted text into downloadable speech
audio by orchestrating the OpenAI speech API, keeping a per-owner history
of generations and serving the resulting MP3 files back to their owners.

Key Features:
    - Single generation pipeline (/api/tts/generate)
    - Six OpenAI voices with automatic fallback to the default voice
    - Per-owner generation ledger with pagination and statistics
    - Fixed-window rate limiting (generation, general API, auth)
    - Hardened download endpoint (no path traversal, MP3 only)
    - Prometheus metrics and structured JSONL logging

Example Usage:
    >>> from speechmagic.core.config import Settings
    >>> from speechmagic.services.generation_service import GenerationService
    >>>
    >>> service = GenerationService(Settings(raw={}))
    >>> outcome = asyncio.run(service.generate("user-1", "Hello world"))
    >>> outcome.audio_url
    '/api/tts/download/speech_2024-...mp3'
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
