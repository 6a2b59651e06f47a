"""
Utility modules.

    - audio.py: Encoded segment concatenation
    - timeit.py: Stage timing
"""
