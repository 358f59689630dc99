"""
Corpus utilities for lingstat.

This module bridges tagger output into analysis tables: term frequency
tables, consolidated entity and noun-phrase tokens, document-term matrices
and within-sentence co-occurrence counts.
"""

from __future__ import annotations

import logging
from collections import Counter
from itertools import combinations
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

import pandas as pd
from scipy import sparse
from sklearn.feature_extraction.text import CountVectorizer

from ..models.dtm import DocumentTermMatrix
from ..models.tokens import TokenList
from ..utils.exceptions import ProcessingError, ValidationError


log = logging.getLogger(__name__)

TextInput = Union[str, Mapping[str, str], Sequence[str]]

# Columns whose values lose meaning once token ids are renumbered.
_DEPENDENCY_COLUMNS = ["head_token_id", "dep_rel"]


def normalize_texts(texts: TextInput) -> Dict[str, str]:
    """
    Turn the accepted text inputs into an ordered ``doc_id -> text`` mapping.

    A mapping keeps its keys; a sequence gets ids ``text1``, ``text2``, ...;
    a single string becomes ``text1``.

    Raises:
        ValidationError: If no texts are given or a text is not a string
    """
    if isinstance(texts, str):
        texts = [texts]

    if isinstance(texts, Mapping):
        items = [(str(doc_id), text) for doc_id, text in texts.items()]
    else:
        items = [(f"text{i}", text) for i, text in enumerate(texts, start=1)]

    if not items:
        raise ValidationError("No texts provided")

    result: Dict[str, str] = {}
    for doc_id, text in items:
        if not isinstance(text, str):
            raise ValidationError("Texts must be strings", field=doc_id)
        result[doc_id] = text

    return result


def _feature_values(frame: pd.DataFrame, feature: str, lowercase: bool) -> pd.Series:
    if feature not in ("token", "lemma"):
        raise ValidationError(f"Unknown feature column: {feature}", value=feature)

    values = frame[feature]
    if feature == "lemma":
        # taggers without a lemmatizer leave lemmas empty
        values = values.where(values != "", frame["token"])
    if lowercase:
        values = values.str.lower()
    return values


def term_frequencies(tokens: TokenList, by: str = "lemma",
                     pos: Optional[Iterable[str]] = None,
                     lowercase: bool = False) -> pd.DataFrame:
    """
    Frequency table of tokens or lemmas.

    Args:
        tokens: Tagged tokens
        by: ``token`` or ``lemma``
        pos: Optional part-of-speech tags to keep
        lowercase: Fold case before counting

    Returns:
        DataFrame with ``key``, ``freq`` and ``freq_pct``, most frequent first
    """
    selection = tokens.filter_pos(include=pos) if pos is not None else tokens
    columns = ["key", "freq", "freq_pct"]
    if selection.n_tokens == 0:
        return pd.DataFrame(columns=columns)

    counts = _feature_values(selection.frame, by, lowercase).value_counts()
    table = pd.DataFrame({"key": counts.index.astype(str), "freq": counts.values.astype(int)})
    table["freq_pct"] = 100.0 * table["freq"] / table["freq"].sum()
    table = table.sort_values(["freq", "key"], ascending=[False, True], kind="mergesort")
    return table.reset_index(drop=True)[columns]


def _split_entity_marker(value: str):
    label, _, marker = value.rpartition("_")
    return label, marker


def _consolidate(tokens: TokenList, column: str, pos_label: str) -> TokenList:
    if not tokens.has_column(column):
        raise ValidationError(f"Tokenlist has no '{column}' column; tag with that annotation enabled")

    frame = tokens.frame.drop(columns=[c for c in _DEPENDENCY_COLUMNS if c in tokens.frame.columns])
    doc_order = {doc_id: i for i, doc_id in enumerate(tokens.doc_ids)}
    frame = frame.assign(_doc_order=frame["doc_id"].map(doc_order))
    frame = frame.sort_values(["_doc_order", "sentence_id", "token_id"], kind="mergesort")
    frame = frame.drop(columns="_doc_order")

    def _marker(value: str):
        if column == "entity":
            return _split_entity_marker(value)
        return ("NP", value)

    rows: List[dict] = []
    group: List[dict] = []
    group_label = ""

    def _flush() -> None:
        if not group:
            return
        merged = dict(group[0])
        merged["token"] = "_".join(r["token"] for r in group)
        merged["lemma"] = "_".join(r["lemma"] or r["token"] for r in group)
        merged["pos"] = pos_label
        merged[column] = group_label
        for extra in ("tag", "feats"):
            if extra in merged and len(group) > 1:
                merged[extra] = ""
        rows.append(merged)
        group.clear()

    previous_key = None
    for record in frame.to_dict(orient="records"):
        key = (record["doc_id"], record["sentence_id"])
        if key != previous_key:
            _flush()
            previous_key = key

        value = record[column]
        if not value:
            _flush()
            rows.append(record)
            continue

        label, marker = _marker(value)
        if marker == "B" or not group or label != group_label:
            _flush()
            group_label = label
        group.append(record)
    _flush()

    result = pd.DataFrame(rows, columns=frame.columns)
    if not result.empty:
        result["token_id"] = result.groupby(["doc_id", "sentence_id"], sort=False).cumcount() + 1

    log.debug(f"Consolidated {column}: {tokens.n_tokens} -> {len(result)} rows")
    return TokenList(result)


def consolidate_entities(tokens: TokenList) -> TokenList:
    """
    Merge each named entity into a single token.

    Multi-token entities become one row whose token and lemma join the parts
    with ``_``; the ``pos`` becomes ``ENTITY`` and the ``entity`` column holds
    the bare entity type. Dependency columns are dropped because token ids
    are renumbered.
    """
    return _consolidate(tokens, "entity", "ENTITY")


def consolidate_noun_phrases(tokens: TokenList) -> TokenList:
    """Merge each noun phrase into a single ``NOUN_PHRASE`` token."""
    return _consolidate(tokens, "noun_phrase", "NOUN_PHRASE")


def document_term_matrix(tokens: TokenList, feature: str = "lemma",
                         pos: Optional[Iterable[str]] = None,
                         lowercase: bool = True) -> DocumentTermMatrix:
    """
    Build a document-term matrix from a tokenlist.

    Every document of ``tokens`` gets a row, also when no token survives the
    part-of-speech selection.

    Args:
        tokens: Tagged tokens
        feature: ``token`` or ``lemma``
        pos: Optional part-of-speech tags to keep
        lowercase: Fold case before counting

    Returns:
        DocumentTermMatrix with alphabetically ordered features
    """
    doc_ids = tokens.doc_ids
    selection = tokens.filter_pos(include=pos) if pos is not None else tokens
    frame = selection.frame.assign(_feature=_feature_values(selection.frame, feature, lowercase))

    grouped = frame.groupby("doc_id", sort=False)["_feature"].apply(list).to_dict()
    documents = [grouped.get(doc_id, []) for doc_id in doc_ids]

    if not any(documents):
        log.warning("No features selected; returning an empty document-term matrix")
        return DocumentTermMatrix(sparse.csr_matrix((len(doc_ids), 0), dtype=int), doc_ids, [])

    vectorizer = CountVectorizer(analyzer=lambda features: features, lowercase=False)
    try:
        matrix = vectorizer.fit_transform(documents)
    except ValueError as e:
        raise ProcessingError("Failed to build document-term matrix",
                              operation="document_term_matrix", original_error=str(e))

    features = [str(f) for f in vectorizer.get_feature_names_out()]
    log.info(f"Built document-term matrix: {len(doc_ids)} documents x {len(features)} features")
    return DocumentTermMatrix(matrix, doc_ids, features)


def cooccurrence(tokens: TokenList, feature: str = "lemma",
                 pos: Optional[Iterable[str]] = None,
                 lowercase: bool = True) -> pd.DataFrame:
    """
    Count how often two terms appear in the same sentence.

    Each unordered pair is counted at most once per sentence.

    Returns:
        DataFrame with ``term1`` < ``term2`` and ``cooc``, most frequent first
    """
    selection = tokens.filter_pos(include=pos) if pos is not None else tokens
    columns = ["term1", "term2", "cooc"]
    if selection.n_tokens == 0:
        return pd.DataFrame(columns=columns)

    frame = selection.frame.assign(_feature=_feature_values(selection.frame, feature, lowercase))
    counter: Counter = Counter()
    for _, terms in frame.groupby(["doc_id", "sentence_id"], sort=False)["_feature"]:
        for pair in combinations(sorted(set(terms)), 2):
            counter[pair] += 1

    table = pd.DataFrame(
        [(a, b, n) for (a, b), n in counter.items()],
        columns=columns,
    )
    if table.empty:
        return table
    table = table.sort_values(["cooc", "term1", "term2"], ascending=[False, True, True], kind="mergesort")
    return table.reset_index(drop=True)
