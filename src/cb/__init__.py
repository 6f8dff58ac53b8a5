"""
Codbbit client-side persistent cache.

Best-effort local caching for large, rarely-changing documents (the
problem catalog) and for remote images, backed by a single SQLite file.
"""

__version__ = "0.1.0"
