"""
lingstat - part-of-speech tagging, document-term matrices and mixed-effects
models for linguistic data.

This package wraps spaCy and UDPipe taggers into a common tokenlist table,
turns tokenlists into document-term matrices, and fits multilevel regression
models from lme4-style formulas with statsmodels.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"

from .core.analyzer import CorpusAnalyzer
from .models.tokens import TokenList, Span
from .models.dtm import DocumentTermMatrix
from .models.regression import MixedModelResult

__all__ = [
    "CorpusAnalyzer",
    "TokenList",
    "Span",
    "DocumentTermMatrix",
    "MixedModelResult",
]
