"""
Core modules for jobmatch.

This package contains the error taxonomy and token accounting shared by
the LLM clients and the storage layer.
"""
