"""
Main analyzer class for lingstat.

This module provides the CorpusAnalyzer class that walks a corpus through
the whole workflow: loading texts, tagging them with spaCy or UDPipe,
building a document-term matrix, fitting mixed-effects models and writing
reports.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

import pandas as pd

from ..models.dtm import DocumentTermMatrix
from ..models.regression import MixedModelResult
from ..models.tokens import TokenList
from ..utils.config import Config
from ..utils.exceptions import (
    FileFormatError,
    LingStatError,
    ProcessingError,
    ValidationError,
)
from ..utils.validators import InputValidator
from .corpus import TextInput, document_term_matrix, term_frequencies
from .mixed_models import MixedModelFitter, center_predictors


log = logging.getLogger(__name__)

BACKENDS = ("spacy", "udpipe")


class CorpusAnalyzer:
    """
    High-level interface over taggers, corpus utilities and mixed models.

    Taggers are created on first use and kept until :meth:`close`.

    Attributes:
        config: Toolkit configuration
        fitter: Mixed-model fitter
    """

    def __init__(self, config: Optional[Config] = None) -> None:
        """
        Initialize the analyzer.

        Args:
            config: Optional configuration object. If not provided,
                   default configuration will be used.
        """
        self.config = config or Config()
        self.fitter = MixedModelFitter(self.config)
        self._taggers: Dict[str, Any] = {}

        log.info("Corpus analyzer initialized")

    def __enter__(self) -> CorpusAnalyzer:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def load_texts(self, path: Union[str, Path]) -> Dict[str, str]:
        """
        Load a corpus.

        Args:
            path: Directory of ``.txt`` files (doc_id is the file stem) or a
                CSV file with ``doc_id`` and ``text`` columns

        Returns:
            Ordered mapping of doc_id to text

        Raises:
            ValidationError: If the path is invalid or holds no texts
            FileFormatError: If the CSV lacks the required columns
        """
        path = InputValidator.validate_text_source(path)
        encoding = self.config.get_processing_config().get("text_encoding", "utf-8")

        if path.is_dir():
            files = sorted(p for p in path.iterdir() if p.suffix.lower() in InputValidator.SUPPORTED_TEXT_FORMATS)
            texts = {p.stem: p.read_text(encoding=encoding) for p in files}
        else:
            try:
                table = pd.read_csv(path, dtype={"doc_id": str}, keep_default_na=False, encoding=encoding)
            except Exception as e:
                raise FileFormatError(f"Failed to read corpus table: {e}", str(path), "csv")
            missing = [c for c in ("doc_id", "text") if c not in table.columns]
            if missing:
                raise FileFormatError(f"Corpus table is missing columns: {missing}", str(path),
                                      "csv with doc_id,text")
            texts = dict(zip(table["doc_id"].astype(str), table["text"].astype(str)))

        min_length = int(self.config.get_processing_config().get("min_text_length", 1))
        texts = {doc_id: text for doc_id, text in texts.items() if len(text.strip()) >= min_length}
        if not texts:
            raise ValidationError(f"No texts found in {path}")

        log.info(f"Loaded {len(texts)} texts from {path}")
        return texts

    def get_tagger(self, backend: Optional[str] = None):
        """
        Return the tagger for a backend, creating it on first use.

        Raises:
            ValidationError: If the backend is unknown
            DependencyError: If the tagger cannot be initialized
        """
        backend = backend or self.config.get_tagger_config().get("default_backend", "spacy")
        if backend not in BACKENDS:
            raise ValidationError(f"Unknown tagger backend: {backend}", value=backend)

        if backend not in self._taggers:
            if backend == "spacy":
                from .spacy_tagger import SpacyTagger
                self._taggers[backend] = SpacyTagger(config=self.config)
            else:
                from .udpipe_tagger import UDPipeTagger
                self._taggers[backend] = UDPipeTagger(config=self.config)

        return self._taggers[backend]

    def set_tagger(self, backend: str, tagger: Any) -> None:
        """Register a ready tagger for a backend, replacing any existing one."""
        if backend not in BACKENDS:
            raise ValidationError(f"Unknown tagger backend: {backend}", value=backend)
        old = self._taggers.pop(backend, None)
        if old is not None and old is not tagger:
            old.finalize()
        self._taggers[backend] = tagger

    def tag(self, texts: TextInput, backend: Optional[str] = None) -> TokenList:
        """
        Tag texts with the chosen backend.

        Args:
            texts: Text, sequence of texts, or mapping of doc_id to text
            backend: ``spacy`` or ``udpipe``; the configured default when None

        Returns:
            TokenList

        Raises:
            ValidationError: For invalid input
            DependencyError: If the tagger cannot be initialized
            ProcessingError: If tagging fails
        """
        try:
            tagger = self.get_tagger(backend)
            if hasattr(tagger, "parse"):
                return tagger.parse(texts)
            return tagger.annotate(texts)
        except LingStatError:
            raise
        except Exception as e:
            raise ProcessingError(f"Failed to tag texts: {e}")

    def build_dtm(self, tokens: TokenList, feature: Optional[str] = None,
                  pos: Optional[Iterable[str]] = None) -> DocumentTermMatrix:
        """
        Build a trimmed document-term matrix with the configured settings.

        Args:
            tokens: Tagged tokens
            feature: ``token`` or ``lemma``; configured default when None
            pos: Part-of-speech tags to keep; configured default when None

        Returns:
            DocumentTermMatrix
        """
        corpus_config = self.config.get_corpus_config()
        feature = feature or corpus_config.get("dtm_feature", "lemma")
        pos = pos if pos is not None else corpus_config.get("dtm_pos")

        dtm = document_term_matrix(tokens, feature=feature, pos=pos,
                                   lowercase=bool(corpus_config.get("lowercase", True)))
        return dtm.trim(min_count=int(corpus_config.get("min_count", 1)),
                        min_docfreq=int(corpus_config.get("min_docfreq", 1)))

    def load_model_data(self, path: Union[str, Path]) -> pd.DataFrame:
        """Read a CSV table of observations for model fitting."""
        path = InputValidator.validate_file_path(path, extensions=InputValidator.SUPPORTED_TABLE_FORMATS)
        try:
            return pd.read_csv(path)
        except Exception as e:
            raise FileFormatError(f"Failed to read model data: {e}", str(path), "csv")

    def fit_mixed_model(self, data: Union[str, Path, pd.DataFrame], formula: str,
                        center: Optional[Iterable[str]] = None, scale: bool = False,
                        reml: Optional[bool] = None) -> MixedModelResult:
        """
        Fit a mixed-effects model.

        Args:
            data: Observations, or a path to a CSV file
            formula: lme4-style formula
            center: Predictors to mean-center before fitting
            scale: Also standardize the centered predictors
            reml: REML or ML estimation; configured default when None

        Returns:
            MixedModelResult
        """
        if not isinstance(data, pd.DataFrame):
            data = self.load_model_data(data)
        if center:
            data = center_predictors(data, center, scale=scale)

        result = self.fitter.fit(data, formula, reml=reml)
        if not result.converged:
            log.warning(f"Model {formula} did not converge; results may be unreliable")
        return result

    def generate_report(self, tokens: TokenList, output_dir: Union[str, Path],
                        dtm: Optional[DocumentTermMatrix] = None,
                        model: Optional[MixedModelResult] = None) -> Dict[str, str]:
        """
        Write analysis outputs.

        Args:
            tokens: Tagged tokens
            output_dir: Directory to save reports
            dtm: Document-term matrix, built with :meth:`build_dtm` when None
            model: Optional fitted model to include

        Returns:
            Dictionary mapping report types to file paths
        """
        output_dir = InputValidator.validate_directory_path(output_dir, must_exist=False, create_if_missing=True)
        output_config = self.config.get_output_config()
        precision = int(output_config.get("float_precision", 4))
        dtm = dtm if dtm is not None else self.build_dtm(tokens)
        frequencies = term_frequencies(tokens)

        reports: Dict[str, str] = {}
        if output_config.get("save_csv", True):
            reports["tokens"] = str(tokens.to_csv(output_dir / "tokens.csv"))

            freq_file = output_dir / "term_frequencies.csv"
            frequencies.round(precision).to_csv(freq_file, index=False)
            reports["term_frequencies"] = str(freq_file)

            dtm_file = output_dir / "dtm.csv"
            dtm.to_frame().to_csv(dtm_file)
            reports["dtm"] = str(dtm_file)

        if output_config.get("save_json", True):
            summary = {
                "n_docs": tokens.n_docs,
                "n_tokens": tokens.n_tokens,
                "pos_counts": {str(k): int(v) for k, v in tokens.frame["pos"].value_counts().items()},
                "dtm_shape": list(dtm.shape),
                "top_features": {str(k): int(v) for k, v in dtm.top_features(10).items()},
            }
            if model is not None:
                summary["model"] = model.to_dict()
            summary_file = output_dir / "summary.json"
            self._save_json(summary_file, summary)
            reports["summary"] = str(summary_file)

        log.info(f"Reports generated in {output_dir}")
        return reports

    def close(self) -> None:
        """Finalize every tagger created by this analyzer."""
        for backend, tagger in list(self._taggers.items()):
            try:
                tagger.finalize()
            except Exception as e:
                log.warning(f"Failed to finalize {backend} tagger: {e}")
        self._taggers.clear()

    def _save_json(self, file_path: Path, data: Any) -> None:
        """Save data to JSON file."""
        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
