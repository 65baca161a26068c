"""
Persistent per-owner semantic memory for LLM chat.
"""

__version__ = "1.0.0"
