"""
Document-term matrix model for lingstat.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List

import numpy as np
import pandas as pd
from scipy import sparse


log = logging.getLogger(__name__)


@dataclass
class DocumentTermMatrix:
    """
    Sparse document-by-feature count matrix.

    Attributes:
        matrix: CSR matrix with one row per document and one column per feature
        doc_ids: Row labels
        features: Column labels, unique
    """
    matrix: Any
    doc_ids: List[str]
    features: List[str]

    def __post_init__(self) -> None:
        """Normalize the matrix and validate its labels."""
        self.matrix = sparse.csr_matrix(self.matrix)
        self.doc_ids = [str(d) for d in self.doc_ids]
        self.features = list(self.features)

        if self.matrix.shape != (len(self.doc_ids), len(self.features)):
            raise ValueError(
                f"Matrix shape {self.matrix.shape} does not match "
                f"{len(self.doc_ids)} documents and {len(self.features)} features"
            )
        if len(set(self.features)) != len(self.features):
            raise ValueError("Feature names must be unique")

    @property
    def shape(self):
        return self.matrix.shape

    def to_frame(self) -> pd.DataFrame:
        """Dense data frame with documents as rows."""
        frame = pd.DataFrame(self.matrix.toarray(), index=self.doc_ids, columns=self.features)
        frame.index.name = "doc_id"
        return frame

    def feature_counts(self) -> pd.Series:
        """Total count per feature, highest first (ties keep column order)."""
        counts = np.asarray(self.matrix.sum(axis=0)).ravel()
        series = pd.Series(counts, index=self.features, name="count")
        return series.sort_values(ascending=False, kind="mergesort")

    def doc_frequencies(self) -> pd.Series:
        """Number of documents containing each feature, in column order."""
        docfreq = np.asarray((self.matrix > 0).sum(axis=0)).ravel()
        return pd.Series(docfreq, index=self.features, name="docfreq")

    def top_features(self, n: int = 10) -> pd.Series:
        """The ``n`` most frequent features."""
        return self.feature_counts().head(n)

    def trim(self, min_count: int = 1, min_docfreq: int = 1) -> DocumentTermMatrix:
        """
        Drop rare features.

        Args:
            min_count: Minimum total count a feature needs to be kept
            min_docfreq: Minimum number of documents a feature must occur in

        Returns:
            New matrix with the surviving features
        """
        counts = np.asarray(self.matrix.sum(axis=0)).ravel()
        docfreq = np.asarray((self.matrix > 0).sum(axis=0)).ravel()
        keep = np.flatnonzero((counts >= min_count) & (docfreq >= min_docfreq))

        log.debug(f"Trimming matrix: keeping {len(keep)} of {len(self.features)} features")
        return self._take_columns(keep)

    def select(self, features: Iterable[str]) -> DocumentTermMatrix:
        """Keep the given features, in the given order; unknown names are ignored."""
        features = list(features)
        position = {feature: i for i, feature in enumerate(self.features)}
        wanted = [f for f in dict.fromkeys(features) if f in position]
        missing = [f for f in features if f not in position]
        if missing:
            log.info(f"Ignoring {len(missing)} features absent from the matrix")
        return self._take_columns(np.array([position[f] for f in wanted], dtype=int))

    def tfidf(self, norm: str = "l2", smooth_idf: bool = True) -> DocumentTermMatrix:
        """Weight counts by TF-IDF with scikit-learn's transformer."""
        from sklearn.feature_extraction.text import TfidfTransformer

        transformer = TfidfTransformer(norm=norm, smooth_idf=smooth_idf)
        weighted = transformer.fit_transform(self.matrix)
        return DocumentTermMatrix(weighted, self.doc_ids, self.features)

    def _take_columns(self, indices: np.ndarray) -> DocumentTermMatrix:
        return DocumentTermMatrix(
            self.matrix[:, indices],
            self.doc_ids,
            [self.features[i] for i in indices],
        )
