"""
Test suite initialization for lingstat.

This module provides the main test configuration and fixtures
for the lingstat test suite.
"""

import logging
import tempfile
from pathlib import Path

import matplotlib
import numpy as np
import pandas as pd
import pytest

from lingstat.models.tokens import TokenList
from lingstat.utils.config import Config

matplotlib.use("Agg")


# Configure logging for tests
logging.basicConfig(
    level=logging.DEBUG,
    format='[TEST] %(levelname)s - %(name)s - %(message)s'
)


# lowercase form -> (lemma, universal POS) for the blank test pipeline
TEST_LEXICON = {
    "the": ("the", "DET"),
    "cats": ("cat", "NOUN"),
    "chase": ("chase", "VERB"),
    "mice": ("mouse", "NOUN"),
    ".": (".", "PUNCT"),
    "new": ("New", "PROPN"),
    "york": ("York", "PROPN"),
    "times": ("Times", "PROPN"),
    "reported": ("report", "VERB"),
    "it": ("it", "PRON"),
    "dogs": ("dog", "NOUN"),
    "sleep": ("sleep", "VERB"),
    "in": ("in", "ADP"),
    "berlin": ("Berlin", "PROPN"),
}


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config(temp_dir):
    """Create a sample configuration that never touches the user's home."""
    config = Config(temp_dir / "lingstat_config.json")
    config.settings.processing["show_progress"] = False
    config.settings.taggers["udpipe_model_dir"] = str(temp_dir / "models")
    return config


@pytest.fixture
def sample_texts():
    """Two short documents covered by the test lexicon."""
    return {
        "d1": "The cats chase mice. The New York Times reported it.",
        "d2": "Dogs sleep in Berlin.",
    }


@pytest.fixture
def blank_nlp():
    """
    A spaCy pipeline without statistical models.

    Sentences come from the sentencizer, lemmas and POS tags from an
    attribute ruler, and entities from an entity ruler.
    """
    spacy = pytest.importorskip("spacy")
    nlp = spacy.blank("en")
    nlp.add_pipe("sentencizer")

    ruler = nlp.add_pipe("attribute_ruler")
    for lower, (lemma, pos) in TEST_LEXICON.items():
        ruler.add(patterns=[[{"LOWER": lower}]], attrs={"LEMMA": lemma, "POS": pos})

    entity_ruler = nlp.add_pipe("entity_ruler")
    entity_ruler.add_patterns([
        {"label": "ORG", "pattern": "New York Times"},
        {"label": "GPE", "pattern": "Berlin"},
    ])
    return nlp


def _toy_parser(doc):
    from spacy.tokens import Doc

    return Doc(
        doc.vocab,
        words=[t.text for t in doc],
        spaces=[bool(t.whitespace_) for t in doc],
        pos=["DET", "NOUN", "VERB", "ADJ", "NOUN", "PUNCT"],
        lemmas=["the", "cat", "chase", "big", "mouse", "."],
        heads=[1, 2, 2, 4, 2, 2],
        deps=["det", "nsubj", "ROOT", "amod", "dobj", "punct"],
    )


@pytest.fixture
def parsed_nlp():
    """
    A spaCy pipeline whose only component returns a fixed dependency parse
    of "The cats chase big mice."
    """
    spacy = pytest.importorskip("spacy")
    from spacy.language import Language

    if not Language.has_factory("lingstat_test_parser"):
        Language.component("lingstat_test_parser", func=_toy_parser)

    nlp = spacy.blank("en")
    nlp.add_pipe("lingstat_test_parser")
    return nlp


@pytest.fixture
def sample_tokens():
    """A hand-built tokenlist with entity and noun-phrase annotations."""
    rows = [
        # doc_id, sentence_id, token_id, token, lemma, pos, entity, noun_phrase
        ("d1", 1, 1, "The", "the", "DET", "", "B"),
        ("d1", 1, 2, "cats", "cat", "NOUN", "", "I"),
        ("d1", 1, 3, "chase", "chase", "VERB", "", ""),
        ("d1", 1, 4, "mice", "mouse", "NOUN", "", "B"),
        ("d1", 1, 5, ".", ".", "PUNCT", "", ""),
        ("d1", 2, 1, "The", "the", "DET", "", ""),
        ("d1", 2, 2, "New", "New", "PROPN", "ORG_B", "B"),
        ("d1", 2, 3, "York", "York", "PROPN", "ORG_I", "I"),
        ("d1", 2, 4, "Times", "Times", "PROPN", "ORG_I", "I"),
        ("d1", 2, 5, "reported", "report", "VERB", "", ""),
        ("d1", 2, 6, "cats", "cat", "NOUN", "", "B"),
        ("d1", 2, 7, ".", ".", "PUNCT", "", ""),
        ("d2", 1, 1, "Dogs", "dog", "NOUN", "", "B"),
        ("d2", 1, 2, "sleep", "sleep", "VERB", "", ""),
        ("d2", 1, 3, "in", "in", "ADP", "", ""),
        ("d2", 1, 4, "Berlin", "Berlin", "PROPN", "GPE_B", "B"),
        ("d2", 1, 5, ".", ".", "PUNCT", "", ""),
    ]
    columns = ["doc_id", "sentence_id", "token_id", "token", "lemma", "pos", "entity", "noun_phrase"]
    return TokenList(pd.DataFrame(rows, columns=columns))


@pytest.fixture
def sample_conllu():
    """UDPipe-style CoNLL-U output with a multiword token and an empty node."""
    return "\n".join([
        "# newdoc",
        "# sent_id = 1",
        "# text = Cats don't sleep.",
        "1\tCats\tcat\tNOUN\tNNS\tNumber=Plur\t4\tnsubj\t_\t_",
        "2-3\tdon't\t_\t_\t_\t_\t_\t_\t_\t_",
        "2\tdo\tdo\tAUX\tVBP\t_\t4\taux\t_\t_",
        "3\tn't\tnot\tPART\tRB\t_\t4\tadvmod\t_\t_",
        "4\tsleep\tsleep\tVERB\tVB\tVerbForm=Inf\t0\troot\t_\t_",
        "4.1\t_\t_\t_\t_\t_\t_\t_\t_\t_",
        "5\t.\t.\tPUNCT\t.\t_\t4\tpunct\t_\tSpaceAfter=No",
        "",
        "# sent_id = 2",
        "1\tDogs\tdog\tNOUN\tNNS\t_\t2\tnsubj\t_\t_",
        "2\tbark\tbark\tVERB\tVBP\t_\t0\troot\t_\tSpaceAfter=No",
        "",
        "",
    ])


@pytest.fixture
def mixed_data():
    """Simulated reaction times: 20 subjects, 15 trials each, random intercepts and slopes."""
    rng = np.random.default_rng(20240101)
    n_subjects, n_trials = 20, 15
    subject = np.repeat([f"s{i:02d}" for i in range(n_subjects)], n_trials)
    intercepts = np.repeat(rng.normal(0.0, 2.0, n_subjects), n_trials)
    slopes = np.repeat(rng.normal(0.0, 0.5, n_subjects), n_trials)
    frequency = rng.normal(5.0, 2.0, n_subjects * n_trials)
    condition = np.tile(["a", "b", "c"], n_subjects * n_trials // 3)
    rt = 3.0 + intercepts + (1.5 + slopes) * frequency + rng.normal(0.0, 1.0, n_subjects * n_trials)
    return pd.DataFrame({
        "subject": subject,
        "frequency": frequency,
        "condition": condition,
        "rt": rt,
    })


@pytest.fixture
def create_test_file(temp_dir):
    """Factory fixture to create test files."""
    def _create_file(filename: str, content: str) -> Path:
        file_path = temp_dir / filename
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")
        return file_path

    return _create_file
