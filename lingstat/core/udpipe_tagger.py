"""
UDPipe tagger for lingstat.

This module loads UDPipe models through the ``ufal.udpipe`` bindings,
downloads pre-trained Universal Dependencies models per language, and
converts UDPipe sentences, tagged or read from CoNLL-U, into the tokenlist
layout.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import requests
from tqdm import tqdm

from ..models.tokens import TokenList
from ..utils.config import Config
from ..utils.exceptions import DependencyError, NetworkError, ProcessingError
from ..utils.validators import InputValidator
from .corpus import TextInput, normalize_texts


log = logging.getLogger(__name__)


MODEL_RELEASE = "ud-2.5-191206"
MODEL_URL = (
    "https://raw.githubusercontent.com/jwijffels/udpipe.models.ud.2.5/master/"
    "inst/udpipe-ud-2.5-191206/{treebank}-" + MODEL_RELEASE + ".udpipe"
)

# Short language names resolve to the default treebank of that language.
DEFAULT_TREEBANKS: Dict[str, str] = {
    "english": "english-ewt",
    "german": "german-gsd",
    "dutch": "dutch-alpino",
    "french": "french-gsd",
    "spanish": "spanish-ancora",
    "italian": "italian-isdt",
    "portuguese": "portuguese-bosque",
    "russian": "russian-syntagrus",
    "ukrainian": "ukrainian-iu",
    "polish": "polish-pdb",
    "czech": "czech-pdt",
    "swedish": "swedish-talbanken",
    "danish": "danish-ddt",
    "norwegian-bokmaal": "norwegian-bokmaal",
    "finnish": "finnish-tdt",
    "chinese": "chinese-gsd",
    "japanese": "japanese-gsd",
    "arabic": "arabic-padt",
}

KNOWN_TREEBANKS = set(DEFAULT_TREEBANKS.values()) | {
    "english-gum", "english-lines", "english-partut",
    "german-hdt", "dutch-lassysmall", "french-sequoia", "french-partut",
    "spanish-gsd", "italian-vit", "portuguese-gsd", "russian-gsd", "russian-taiga",
}



def resolve_treebank(language: str) -> str:
    """Map a language or treebank name to a treebank identifier."""
    known = set(DEFAULT_TREEBANKS) | KNOWN_TREEBANKS
    name = InputValidator.validate_language(language, known)
    return DEFAULT_TREEBANKS.get(name, name)


def model_file_name(treebank: str) -> str:
    return f"{treebank}-{MODEL_RELEASE}.udpipe"


def download_model(language: str, model_dir: Union[str, Path], overwrite: bool = False,
                   timeout: int = 60) -> Path:
    """
    Download a pre-trained UDPipe model for a language.

    Args:
        language: Language (``english``) or treebank (``english-ewt``) name
        model_dir: Directory to store the model file
        overwrite: Download again even if the file exists
        timeout: HTTP timeout in seconds

    Returns:
        Path to the model file

    Raises:
        ValidationError: If the language is unknown
        NetworkError: If the download fails
        ProcessingError: If the model file cannot be written
    """
    treebank = resolve_treebank(language)
    model_dir = InputValidator.validate_directory_path(model_dir, must_exist=False, create_if_missing=True)
    target = model_dir / model_file_name(treebank)

    if target.exists() and not overwrite:
        log.info(f"UDPipe model already present: {target}")
        return target

    url = MODEL_URL.format(treebank=treebank)
    log.info(f"Downloading UDPipe model {treebank} from {url}")
    partial = target.with_suffix(".part")
    try:
        with requests.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            with open(partial, "wb") as f:
                for chunk in response.iter_content(chunk_size=1 << 20):
                    if chunk:
                        f.write(chunk)
    except requests.HTTPError as e:
        partial.unlink(missing_ok=True)
        status = e.response.status_code if e.response is not None else 0
        raise NetworkError(f"Failed to download UDPipe model {treebank}", url, status)
    except requests.RequestException as e:
        partial.unlink(missing_ok=True)
        raise NetworkError(f"Failed to download UDPipe model {treebank}: {e}", url)
    except OSError as e:
        partial.unlink(missing_ok=True)
        raise ProcessingError(f"Failed to write UDPipe model {treebank}", operation="download_model",
                              original_error=str(e))

    partial.replace(target)
    log.info(f"UDPipe model saved to {target}")
    return target


def _import_udpipe():
    try:
        import ufal.udpipe
    except ImportError as e:
        raise DependencyError(
            f"ufal.udpipe is not installed: {e}", "ufal.udpipe",
            "reinstall the dependent packages from source "
            "(pip install --force-reinstall --no-binary :all: ufal.udpipe)",
        )
    return ufal.udpipe


def _read_sentences(text: str, reader) -> list:
    """Feed text to a UDPipe tokenizer or input format and collect its sentences."""
    udpipe = _import_udpipe()
    reader.setText(text)
    error = udpipe.ProcessingError()
    sentences = []

    sentence = udpipe.Sentence()
    while reader.nextSentence(sentence, error):
        sentences.append(sentence)
        sentence = udpipe.Sentence()
    if error.occurred():
        raise ProcessingError("UDPipe could not read the input", operation="read_sentences",
                              original_error=error.message)

    return sentences


def _sentence_rows(sentences, doc_id: str) -> List[Dict[str, Any]]:
    """
    Convert ``ufal.udpipe.Sentence`` objects into tokenlist rows.

    ``words[0]`` is the technical root and is skipped. Multiword tokens and
    empty nodes live in separate collections, so only syntactic words
    become rows.
    """
    rows: List[Dict[str, Any]] = []
    for sentence_id, sentence in enumerate(sentences, start=1):
        for i in range(1, len(sentence.words)):
            word = sentence.words[i]
            rows.append({
                "doc_id": doc_id,
                "sentence_id": sentence_id,
                "token_id": int(word.id),
                "token": word.form,
                "lemma": word.lemma,
                "pos": word.upostag,
                "tag": word.xpostag,
                "feats": word.feats,
                # unparsed words carry head -1
                "head_token_id": max(int(word.head), 0),
                "dep_rel": word.deprel,
            })
    return rows


def read_conllu(text: str, doc_id: str) -> List[Dict[str, Any]]:
    """
    Parse CoNLL-U text into tokenlist rows.

    Args:
        text: CoNLL-U formatted text
        doc_id: Document identifier for every row

    Returns:
        List of row dictionaries

    Raises:
        ProcessingError: If UDPipe rejects the CoNLL-U input
    """
    udpipe = _import_udpipe()
    input_format = udpipe.InputFormat.newInputFormat("conllu")
    if not input_format:
        raise ProcessingError("Cannot create CoNLL-U input format", operation="read_conllu")
    return _sentence_rows(_read_sentences(text, input_format), doc_id)


class UDPipeTagger:
    """
    Tokenizer, tagger, lemmatizer and dependency parser backed by UDPipe.

    Attributes:
        config: Toolkit configuration
        model_path: Location of the loaded ``.udpipe`` model
        model: The ``ufal.udpipe.Model``, ``None`` after finalization
    """

    def __init__(self, language: Optional[str] = None, model_path: Optional[Union[str, Path]] = None,
                 config: Optional[Config] = None) -> None:
        """
        Initialize the tagger, downloading the model if needed.

        Args:
            language: Language or treebank name used to locate or download a model
            model_path: Explicit model file; takes precedence over ``language``
            config: Optional configuration object
        """
        self.config = config or Config()
        tagger_config = self.config.get_tagger_config()
        self.show_progress = bool(self.config.get_processing_config().get("show_progress", True))

        model_path = model_path or tagger_config.get("udpipe_model_path")
        if model_path:
            self.model_path = InputValidator.validate_file_path(model_path, extensions=[".udpipe"])
        else:
            language = language or tagger_config.get("udpipe_language", "english-ewt")
            self.model_path = download_model(language, tagger_config["udpipe_model_dir"])

        self.model = None
        self.initialize()

    def initialize(self) -> None:
        """
        Load the UDPipe model.

        Raises:
            DependencyError: If ``ufal.udpipe`` is missing or the model cannot be loaded
        """
        udpipe = _import_udpipe()
        self.model = udpipe.Model.load(str(self.model_path))
        if not self.model:
            self.model = None
            raise DependencyError(f"Cannot load UDPipe model from {self.model_path}",
                                  str(self.model_path), "download the model again")

        log.info(f"Loaded UDPipe model {self.model_path.name}")

    @property
    def is_initialized(self) -> bool:
        return self.model is not None

    def finalize(self) -> None:
        """Release the UDPipe model."""
        if self.model is not None:
            self.model = None
            log.info(f"UDPipe tagger for {self.model_path.name} finalized")

    def __enter__(self) -> UDPipeTagger:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.finalize()

    def annotate(self, texts: TextInput, tagger: bool = True, parser: bool = True) -> TokenList:
        """
        Tokenize, tag, lemmatize and optionally parse texts.

        Args:
            texts: Text, sequence of texts, or mapping of doc_id to text
            tagger: Run the tagger and lemmatizer
            parser: Run the dependency parser

        Returns:
            TokenList with ``tag``, ``feats``, ``head_token_id`` and ``dep_rel`` columns
        """
        if self.model is None:
            raise ProcessingError("UDPipe tagger has been finalized", operation="tagging")

        tokenizer = self.model.newTokenizer(self.model.DEFAULT)
        if not tokenizer:
            raise ProcessingError(f"UDPipe model {self.model_path.name} has no tokenizer",
                                  operation="annotate")

        documents = normalize_texts(texts)
        records: List[Dict[str, Any]] = []
        items = tqdm(documents.items(), total=len(documents), desc="Annotating", unit="doc",
                     disable=not self.show_progress or len(documents) < 2)
        for doc_id, text in items:
            try:
                sentences = _read_sentences(text, tokenizer)
            except ProcessingError as e:
                raise ProcessingError(f"UDPipe failed on document {doc_id}", operation="annotate",
                                      original_error=e.original_error)
            for sentence in sentences:
                if tagger:
                    self.model.tag(sentence, self.model.DEFAULT)
                if parser:
                    self.model.parse(sentence, self.model.DEFAULT)
            records.extend(_sentence_rows(sentences, doc_id))

        tokens = TokenList.from_records(records)
        log.info(f"Annotated {tokens.n_docs} documents into {tokens.n_tokens} tokens")
        return tokens
