"""
Lore: a personal knowledge index.
Keyword, semantic and hybrid retrieval over one embedded SQLite store.
"""

__version__ = "1.0.0"
