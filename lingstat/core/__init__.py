"""
Core package initialization for lingstat.

This module provides the taggers, corpus utilities and mixed-model
fitting layer.
"""

from .analyzer import CorpusAnalyzer
from .corpus import (
    term_frequencies,
    consolidate_entities,
    consolidate_noun_phrases,
    document_term_matrix,
    cooccurrence,
)
from .mixed_models import MixedModelFitter, parse_formula, center_predictors, compare_models
from .reporting import tabulate_models, plot_fixed_effects, plot_group_effects
from .spacy_tagger import SpacyTagger
from .udpipe_tagger import UDPipeTagger, download_model, read_conllu

__all__ = [
    "CorpusAnalyzer",
    "SpacyTagger",
    "UDPipeTagger",
    "download_model",
    "read_conllu",
    "term_frequencies",
    "consolidate_entities",
    "consolidate_noun_phrases",
    "document_term_matrix",
    "cooccurrence",
    "MixedModelFitter",
    "parse_formula",
    "center_predictors",
    "compare_models",
    "tabulate_models",
    "plot_fixed_effects",
    "plot_group_effects",
]
