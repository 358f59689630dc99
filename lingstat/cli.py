"""
Command line interface for lingstat.

This module provides the command line interface for tagging corpora,
building document-term matrices and fitting mixed-effects models from the
terminal.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .core.analyzer import CorpusAnalyzer
from .core.corpus import document_term_matrix
from .core.mixed_models import compare_models
from .core.reporting import tabulate_models
from .models.tokens import TokenList
from .utils.config import Config
from .utils.exceptions import LingStatError, log_exception


def setup_logging(level: str = "INFO") -> None:
    """
    Set up logging for CLI.

    Args:
        level: Logging level
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format='[%(levelname)s] %(message)s',
        stream=sys.stdout
    )


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with one subcommand per workflow step."""
    parser = argparse.ArgumentParser(
        description="lingstat - tagging, document-term matrices and mixed-effects models",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Tag a folder of .txt files with spaCy
  lingstat tag corpus/ --out tokens.csv

  # Tag with UDPipe (the model is downloaded on first use)
  lingstat tag texts.csv --backend udpipe --language german --out tokens.csv

  # Noun and verb lemmas as a document-term matrix
  lingstat dtm tokens.csv --pos NOUN VERB --min-docfreq 2 --out dtm.csv

  # Random-intercept model with a centered predictor
  lingstat mixed data.csv --formula "rt ~ frequency + (1 | subject)" --center frequency
        """
    )

    parser.add_argument("--config", help="Path to configuration file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Suppress non-error output")
    parser.add_argument("--version", action="version", version="%(prog)s 1.0.0")

    commands = parser.add_subparsers(dest="command", required=True)

    tag = commands.add_parser("tag", help="Tag texts into a tokenlist CSV")
    tag.add_argument("input", help="Directory of .txt files or CSV with doc_id,text columns")
    tag.add_argument("--backend", choices=["spacy", "udpipe"], help="Tagger backend")
    tag.add_argument("--model", help="spaCy model name (e.g. en_core_web_sm)")
    tag.add_argument("--language", help="UDPipe language or treebank (e.g. english-ewt)")
    tag.add_argument("--udpipe-model", help="Path to a local .udpipe model file")
    tag.add_argument("--noun-phrases", action="store_true", help="Mark noun phrases (spaCy, needs a parser)")
    tag.add_argument("--out", "-o", default="tokens.csv", help="Output CSV (default: tokens.csv)")

    dtm = commands.add_parser("dtm", help="Build a document-term matrix from a tokenlist CSV")
    dtm.add_argument("tokens", help="Tokenlist CSV written by 'lingstat tag'")
    dtm.add_argument("--feature", choices=["token", "lemma"], help="Feature column")
    dtm.add_argument("--pos", nargs="*", help="Part-of-speech tags to keep")
    dtm.add_argument("--min-count", type=int, help="Minimum total feature count")
    dtm.add_argument("--min-docfreq", type=int, help="Minimum document frequency")
    dtm.add_argument("--tfidf", action="store_true", help="Weight counts by TF-IDF")
    dtm.add_argument("--out", "-o", default="dtm.csv", help="Output CSV (default: dtm.csv)")

    mixed = commands.add_parser("mixed", help="Fit a mixed-effects model")
    mixed.add_argument("data", help="CSV file of observations")
    mixed.add_argument("--formula", "-f", required=True, action="append",
                       help="lme4-style formula; repeat to compare nested models")
    mixed.add_argument("--center", nargs="*", help="Predictors to mean-center")
    mixed.add_argument("--scale", action="store_true", help="Standardize centered predictors")
    mixed.add_argument("--ml", action="store_true", help="Use ML instead of REML")
    mixed.add_argument("--out", "-o", help="Write results as JSON")

    analyze = commands.add_parser("analyze", help="Tag a corpus and write all reports")
    analyze.add_argument("input", help="Directory of .txt files or CSV with doc_id,text columns")
    analyze.add_argument("--backend", choices=["spacy", "udpipe"], help="Tagger backend")
    analyze.add_argument("--out", "-o", default="lingstat_results", help="Output directory")

    return parser


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed arguments
    """
    return build_parser().parse_args(argv)


def _load_config(args: argparse.Namespace) -> Config:
    config = Config(args.config) if args.config else Config()
    if args.quiet:
        config.settings.processing["show_progress"] = False
    return config


def run_tag(args: argparse.Namespace, config: Config) -> None:
    logger = logging.getLogger(__name__)
    overrides = {}
    if args.model:
        overrides["spacy_model"] = args.model
    if args.language:
        overrides["udpipe_language"] = args.language
    if args.udpipe_model:
        overrides["udpipe_model_path"] = args.udpipe_model
    if args.noun_phrases:
        overrides["extract_noun_phrases"] = True
    if overrides:
        config.set_tagger_config(overrides)

    with CorpusAnalyzer(config) as analyzer:
        texts = analyzer.load_texts(args.input)
        tokens = analyzer.tag(texts, backend=args.backend)
        path = tokens.to_csv(args.out)

    logger.info(f"Wrote {tokens.n_tokens} tokens from {tokens.n_docs} documents to {path}")


def run_dtm(args: argparse.Namespace, config: Config) -> None:
    logger = logging.getLogger(__name__)
    corpus_config = config.get_corpus_config()
    tokens = TokenList.from_csv(args.tokens)

    dtm = document_term_matrix(
        tokens,
        feature=args.feature or corpus_config["dtm_feature"],
        pos=args.pos if args.pos else corpus_config.get("dtm_pos"),
        lowercase=bool(corpus_config.get("lowercase", True)),
    )
    min_count = args.min_count if args.min_count is not None else int(corpus_config.get("min_count", 1))
    min_docfreq = args.min_docfreq if args.min_docfreq is not None else int(corpus_config.get("min_docfreq", 1))
    dtm = dtm.trim(min_count=min_count, min_docfreq=min_docfreq)
    if args.tfidf:
        dtm = dtm.tfidf()

    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    dtm.to_frame().to_csv(out)
    logger.info(f"Wrote {dtm.shape[0]} x {dtm.shape[1]} document-term matrix to {out}")

    if not args.quiet:
        print(dtm.top_features(10).to_string())


def run_mixed(args: argparse.Namespace, config: Config) -> None:
    analyzer = CorpusAnalyzer(config)
    data = analyzer.load_model_data(args.data)
    reml = False if args.ml else None

    results = [
        analyzer.fit_mixed_model(data, formula, center=args.center, scale=args.scale, reml=reml)
        for formula in args.formula
    ]

    if not args.quiet:
        print(tabulate_models(results).to_string())
        if len(results) > 1:
            print()
            print(compare_models(*results).to_string())

    if args.out:
        out = Path(args.out)
        out.parent.mkdir(parents=True, exist_ok=True)
        with open(out, 'w', encoding='utf-8') as f:
            json.dump([r.to_dict() for r in results], f, indent=2, ensure_ascii=False)


def run_analyze(args: argparse.Namespace, config: Config) -> None:
    logger = logging.getLogger(__name__)
    with CorpusAnalyzer(config) as analyzer:
        texts = analyzer.load_texts(args.input)
        tokens = analyzer.tag(texts, backend=args.backend)
        reports = analyzer.generate_report(tokens, args.out)

    for name, path in reports.items():
        logger.info(f"{name}: {path}")


COMMANDS = {
    "tag": run_tag,
    "dtm": run_dtm,
    "mixed": run_mixed,
    "analyze": run_analyze,
}


def run(args: argparse.Namespace) -> int:
    """
    Dispatch a parsed command and map library errors to an exit status.

    Returns:
        0 on success, 1 on failure
    """
    logger = logging.getLogger(__name__)

    try:
        config = _load_config(args)
        COMMANDS[args.command](args, config)
        return 0
    except LingStatError as e:
        log_exception(logger, e, f"{args.command} failed")
    except Exception as e:
        logger.critical(f"Unexpected error: {e}", exc_info=args.verbose)
    return 1


def main(argv: Optional[List[str]] = None) -> None:
    """
    Main CLI entry point.
    """
    args = parse_arguments(argv)

    if args.quiet:
        log_level = "ERROR"
    elif args.verbose:
        log_level = "DEBUG"
    else:
        log_level = "INFO"

    setup_logging(log_level)
    sys.exit(run(args))


if __name__ == "__main__":
    main()
