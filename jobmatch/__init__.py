"""
jobmatch - LLM-backed resume and job description extraction.
"""

__version__ = "0.1.0"
