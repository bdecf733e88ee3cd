"""
Analysis orchestration for streamflowml
"""

from .pipeline import StreamflowAnalysis, AnalysisResult

__all__ = ["StreamflowAnalysis", "AnalysisResult"]
