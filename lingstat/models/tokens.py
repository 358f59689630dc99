"""
Token models for lingstat.

This module defines the tokenlist, the tabular one-row-per-token
representation shared by every tagger backend, and the span records
produced by entity and noun-phrase extraction.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import pandas as pd

from ..utils.validators import InputValidator


TOKEN_COLUMNS = ["doc_id", "sentence_id", "token_id", "token", "lemma", "pos"]
OPTIONAL_COLUMNS = ["tag", "head_token_id", "dep_rel", "entity", "noun_phrase", "feats"]
SPAN_COLUMNS = ["doc_id", "sentence_id", "start_token_id", "end_token_id", "text", "label", "kind"]

_INT_COLUMNS = ("sentence_id", "token_id", "head_token_id")
_STR_COLUMNS = ("token", "lemma", "pos", "tag", "dep_rel", "entity", "noun_phrase", "feats")


@dataclass
class TokenList:
    """
    One row per token with document, sentence and token positions.

    Attributes:
        frame: Underlying data frame. Required columns are listed in
            ``TOKEN_COLUMNS``; optional annotation columns in
            ``OPTIONAL_COLUMNS``.
    """
    frame: pd.DataFrame

    def __post_init__(self) -> None:
        """Validate and normalize the token table."""
        InputValidator.validate_tokens_frame(self.frame, TOKEN_COLUMNS)

        ordered = TOKEN_COLUMNS + [c for c in OPTIONAL_COLUMNS if c in self.frame.columns]
        ordered += [c for c in self.frame.columns if c not in ordered]
        frame = self.frame[ordered].reset_index(drop=True).copy()

        frame["doc_id"] = frame["doc_id"].astype(str)
        for column in _INT_COLUMNS:
            if column in frame.columns:
                frame[column] = frame[column].astype(int)
        for column in _STR_COLUMNS:
            if column in frame.columns:
                frame[column] = frame[column].fillna("").astype(str)

        self.frame = frame

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> TokenList:
        """Build a tokenlist from an iterable of row dictionaries."""
        records = list(records)
        if not records:
            return cls(pd.DataFrame(columns=TOKEN_COLUMNS))
        return cls(pd.DataFrame.from_records(records))

    @classmethod
    def from_csv(cls, path: Union[str, Path]) -> TokenList:
        """Load a tokenlist written by :meth:`to_csv`."""
        path = InputValidator.validate_file_path(path, extensions=[".csv"])
        dtype = {column: str for column in ("doc_id",) + _STR_COLUMNS}
        frame = pd.read_csv(path, dtype=dtype, keep_default_na=False)
        return cls(frame)

    def to_csv(self, path: Union[str, Path]) -> Path:
        """Write the tokenlist to a CSV file and return its path."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.frame.to_csv(path, index=False)
        return path

    def to_records(self) -> List[Dict[str, Any]]:
        """Convert to a list of row dictionaries."""
        return self.frame.to_dict(orient="records")

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def n_tokens(self) -> int:
        """Number of token rows."""
        return len(self.frame)

    @property
    def n_docs(self) -> int:
        """Number of distinct documents."""
        return int(self.frame["doc_id"].nunique())

    @property
    def doc_ids(self) -> List[str]:
        """Document identifiers in order of first appearance."""
        return list(pd.unique(self.frame["doc_id"]))

    def has_column(self, column: str) -> bool:
        return column in self.frame.columns

    def filter_pos(self, include: Optional[Iterable[str]] = None,
                   exclude: Optional[Iterable[str]] = None) -> TokenList:
        """
        Keep tokens by part-of-speech tag.

        Args:
            include: Tags to keep (all tags when None)
            exclude: Tags to drop

        Returns:
            New TokenList with the selected rows
        """
        mask = pd.Series(True, index=self.frame.index)
        include = InputValidator.validate_pos_tags(include)
        exclude = InputValidator.validate_pos_tags(exclude)
        if include is not None:
            mask &= self.frame["pos"].isin(include)
        if exclude is not None:
            mask &= ~self.frame["pos"].isin(exclude)
        return TokenList(self.frame[mask])

    def for_document(self, doc_id: str) -> TokenList:
        """Rows of a single document."""
        return TokenList(self.frame[self.frame["doc_id"] == str(doc_id)])

    def sentences(self, doc_id: str) -> List[str]:
        """Surface text of each sentence of a document, tokens joined by spaces."""
        rows = self.frame[self.frame["doc_id"] == str(doc_id)]
        grouped = rows.sort_values(["sentence_id", "token_id"]).groupby("sentence_id", sort=True)["token"]
        return [" ".join(tokens) for _, tokens in grouped]


@dataclass
class Span:
    """
    A contiguous token range inside one sentence.

    Attributes:
        doc_id: Document identifier
        sentence_id: Sentence number within the document
        start_token_id: First token id (inclusive)
        end_token_id: Last token id (inclusive)
        text: Surface text of the span
        label: Entity type, or ``NP`` for noun phrases
        kind: ``entity`` or ``noun_phrase``
    """
    doc_id: str
    sentence_id: int
    start_token_id: int
    end_token_id: int
    text: str
    label: str
    kind: str = "entity"

    def __post_init__(self) -> None:
        """Validate span positions."""
        if self.start_token_id < 1 or self.end_token_id < 1:
            raise ValueError("Token ids must be positive")
        if self.start_token_id > self.end_token_id:
            raise ValueError("Span start must not come after its end")
        if self.kind not in ("entity", "noun_phrase"):
            raise ValueError(f"Unknown span kind: {self.kind}")

    @property
    def length(self) -> int:
        """Number of tokens in the span."""
        return self.end_token_id - self.start_token_id + 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def spans_to_frame(spans: Iterable[Span]) -> pd.DataFrame:
    """Tabulate spans, one row each, keeping the column layout when empty."""
    return pd.DataFrame([span.to_dict() for span in spans], columns=SPAN_COLUMNS)
