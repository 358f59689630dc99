"""
Data models for lingstat.

This package contains the tokenlist, span, document-term matrix and
regression result structures shared across the toolkit.
"""

from .tokens import TokenList, Span, spans_to_frame, TOKEN_COLUMNS
from .dtm import DocumentTermMatrix
from .regression import MixedModelResult

__all__ = [
    "TokenList",
    "Span",
    "spans_to_frame",
    "TOKEN_COLUMNS",
    "DocumentTermMatrix",
    "MixedModelResult",
]
