"""
Speech Synthesis and Artifact Components.

This package provides the pieces the generation pipeline is built from:
    - provider.py: OpenAI speech client, voice catalogue, duration estimate
    - storage.py: Ephemeral MP3 file store
    - ratelimit.py: Fixed-window rate limiters
"""
