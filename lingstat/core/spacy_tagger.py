"""
spaCy tagger for lingstat.

This module wraps a spaCy pipeline and converts its annotations into the
tokenlist layout: tokenization, lemmatization, part-of-speech tags,
dependencies, named entities and noun phrases.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

from tqdm import tqdm

from ..models.tokens import Span, TokenList
from ..utils.config import Config
from ..utils.exceptions import DependencyError, ProcessingError, ValidationError
from ..utils.validators import InputValidator
from .corpus import TextInput, normalize_texts


log = logging.getLogger(__name__)


class SpacyTagger:
    """
    Part-of-speech tagger, lemmatizer and entity recognizer backed by spaCy.

    A loaded pipeline can use several hundred megabytes; call
    :meth:`finalize` (or use the tagger as a context manager) once done.

    Attributes:
        config: Toolkit configuration
        model_name: Name of the loaded spaCy model
        nlp: The spaCy ``Language`` object, ``None`` after finalization
    """

    def __init__(self, model_name: Optional[str] = None, config: Optional[Config] = None,
                 nlp: Optional[Any] = None) -> None:
        """
        Initialize the tagger.

        Args:
            model_name: spaCy model package, defaults to the configured model
            config: Optional configuration object
            nlp: Ready spaCy pipeline; skips model loading when given
        """
        self.config = config or Config()
        tagger_config = self.config.get_tagger_config()
        self.model_name = model_name or tagger_config.get("spacy_model", "en_core_web_sm")
        self.show_progress = bool(self.config.get_processing_config().get("show_progress", True))
        self.nlp = nlp

        if self.nlp is None:
            self.initialize()
        else:
            log.info(f"spaCy tagger initialized with a supplied pipeline: {self.nlp.pipe_names}")

    def initialize(self) -> None:
        """
        Load the spaCy model.

        Raises:
            DependencyError: If spaCy or the model cannot be loaded
        """
        model_name = InputValidator.validate_model_name(self.model_name)
        remedy = (
            "reinstall the dependent packages from source "
            "(pip install --force-reinstall --no-binary :all: spacy) "
            f"and download the model (python -m spacy download {model_name})"
        )

        try:
            import spacy
        except ImportError as e:
            raise DependencyError(f"spaCy is not installed: {e}", "spacy", remedy)

        try:
            self.nlp = spacy.load(model_name)
        except Exception as e:
            raise DependencyError(f"Failed to initialize spaCy model '{model_name}': {e}",
                                  model_name, remedy)

        log.info(f"Loaded spaCy model {model_name} with pipes {self.nlp.pipe_names}")

    @property
    def is_initialized(self) -> bool:
        return self.nlp is not None

    def finalize(self) -> None:
        """Release the spaCy pipeline and the memory it holds."""
        if self.nlp is not None:
            self.nlp = None
            log.info(f"spaCy tagger for {self.model_name} finalized")

    def __enter__(self) -> SpacyTagger:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.finalize()

    def _require_nlp(self):
        if self.nlp is None:
            raise ProcessingError("spaCy tagger has been finalized", operation="tagging")
        return self.nlp

    def _iter_docs(self, texts: TextInput) -> Iterator[Tuple[str, Any]]:
        nlp = self._require_nlp()
        documents = normalize_texts(texts)
        doc_ids = list(documents)
        stream = nlp.pipe(documents.values())
        stream = tqdm(stream, total=len(doc_ids), desc="Tagging", unit="doc",
                      disable=not self.show_progress or len(doc_ids) < 2)
        try:
            for doc_id, doc in zip(doc_ids, stream):
                yield doc_id, doc
        except (ValidationError, ProcessingError):
            raise
        except Exception as e:
            raise ProcessingError("spaCy failed to process the texts",
                                  operation="tagging", original_error=str(e))

    @staticmethod
    def _sentences(doc) -> List[Any]:
        if doc.has_annotation("SENT_START") or doc.has_annotation("DEP"):
            return list(doc.sents)
        return [doc[:]]

    def _index_tokens(self, doc) -> Dict[int, Tuple[int, int]]:
        """Map each non-whitespace token index to (sentence_id, token_id)."""
        positions: Dict[int, Tuple[int, int]] = {}
        for sentence_id, sentence in enumerate(self._sentences(doc), start=1):
            token_id = 0
            for token in sentence:
                if token.is_space:
                    continue
                token_id += 1
                positions[token.i] = (sentence_id, token_id)
        return positions

    def parse(self, texts: TextInput, entity: Optional[bool] = None, dependency: bool = False,
              noun_phrase: Optional[bool] = None, lemma: bool = True, tag: bool = False) -> TokenList:
        """
        Tag texts into a tokenlist.

        Args:
            texts: Text, sequence of texts, or mapping of doc_id to text
            entity: Add the IOB ``entity`` column (configured default when None)
            dependency: Add ``head_token_id`` and ``dep_rel`` columns
            noun_phrase: Add the IOB ``noun_phrase`` column (configured default when None)
            lemma: Fill the ``lemma`` column
            tag: Add the language-specific ``tag`` column

        Returns:
            TokenList with one row per non-whitespace token

        Raises:
            ProcessingError: If noun phrases are requested from a pipeline
                without a dependency parser
        """
        tagger_config = self.config.get_tagger_config()
        if entity is None:
            entity = bool(tagger_config.get("extract_entities", True))
        if noun_phrase is None:
            noun_phrase = bool(tagger_config.get("extract_noun_phrases", False))

        records: List[Dict[str, Any]] = []
        for doc_id, doc in self._iter_docs(texts):
            positions = self._index_tokens(doc)
            chunk_markers = self._noun_phrase_markers(doc) if noun_phrase else {}

            for token in doc:
                if token.i not in positions:
                    continue
                sentence_id, token_id = positions[token.i]
                record: Dict[str, Any] = {
                    "doc_id": doc_id,
                    "sentence_id": sentence_id,
                    "token_id": token_id,
                    "token": token.text,
                    "lemma": token.lemma_ if lemma else "",
                    "pos": token.pos_,
                }
                if tag:
                    record["tag"] = token.tag_
                if dependency:
                    head = positions.get(token.head.i)
                    record["head_token_id"] = 0 if token.head.i == token.i or head is None else head[1]
                    record["dep_rel"] = token.dep_
                if entity:
                    iob = token.ent_iob_
                    record["entity"] = f"{token.ent_type_}_{iob}" if iob in ("B", "I") else ""
                if noun_phrase:
                    record["noun_phrase"] = chunk_markers.get(token.i, "")
                records.append(record)

        tokens = TokenList.from_records(records)
        log.info(f"Tagged {tokens.n_docs} documents into {tokens.n_tokens} tokens")
        return tokens

    def _noun_phrase_markers(self, doc) -> Dict[int, str]:
        if not doc.has_annotation("DEP"):
            raise ProcessingError(
                "Noun phrase extraction requires a dependency parser in the spaCy pipeline",
                operation="noun_phrases",
            )
        markers: Dict[int, str] = {}
        for chunk in doc.noun_chunks:
            first = True
            for token in chunk:
                if token.is_space:
                    continue
                markers[token.i] = "B" if first else "I"
                first = False
        return markers

    def _span(self, doc_id: str, span, positions: Dict[int, Tuple[int, int]],
              label: str, kind: str) -> Optional[Span]:
        indices = [t.i for t in span if t.i in positions]
        if not indices:
            return None
        start = positions[indices[0]]
        end = positions[indices[-1]]
        if start[0] != end[0]:
            log.debug(f"Skipping {kind} crossing a sentence boundary in {doc_id}: {span.text!r}")
            return None
        return Span(doc_id, start[0], start[1], end[1], span.text, label, kind)

    def extract_entities(self, texts: TextInput) -> List[Span]:
        """
        Extract named entities.

        Returns:
            List of entity spans in document order
        """
        spans: List[Span] = []
        for doc_id, doc in self._iter_docs(texts):
            positions = self._index_tokens(doc)
            for ent in doc.ents:
                span = self._span(doc_id, ent, positions, ent.label_, "entity")
                if span is not None:
                    spans.append(span)

        log.info(f"Extracted {len(spans)} entities")
        return spans

    def extract_noun_phrases(self, texts: TextInput) -> List[Span]:
        """
        Extract base noun phrases.

        Raises:
            ProcessingError: If the pipeline has no dependency parser
        """
        spans: List[Span] = []
        for doc_id, doc in self._iter_docs(texts):
            if not doc.has_annotation("DEP"):
                raise ProcessingError(
                    "Noun phrase extraction requires a dependency parser in the spaCy pipeline",
                    operation="noun_phrases",
                )
            positions = self._index_tokens(doc)
            for chunk in doc.noun_chunks:
                span = self._span(doc_id, chunk, positions, "NP", "noun_phrase")
                if span is not None:
                    spans.append(span)

        log.info(f"Extracted {len(spans)} noun phrases")
        return spans
