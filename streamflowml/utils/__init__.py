"""
Utilities for streamflowml
"""
