"""
Compacting-Agent - a resumable coding agent that keeps its conversation
within the model's context window.
"""

__version__ = "0.1.0"
