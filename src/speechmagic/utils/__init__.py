"""
Utility Modules for speechmagic.

This package provides common utility functions used across the codebase:
    - text.py: Word counting, previews and artifact filenames
    - timeit.py: Performance measurement utilities
"""
