"""
Speech pipeline components.

    - chunker.py: Sentence-aware text splitting
    - voices.py: Language tag to voice resolution
    - fingerprint.py: Content-addressed cache keys
    - cache.py: Synthesis cache with TTL and sweep
    - client.py: Google Cloud Text-to-Speech client
    - concurrency.py: Synthesis fan-out limiter
    - retry.py: Backoff policy for provider calls
"""
