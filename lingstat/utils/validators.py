"""
Input validation utilities for lingstat.

This module provides input validation for files, directories, tokenlist
tables, model formulas and tagger parameters.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import pandas as pd

from ..utils.exceptions import ValidationError


log = logging.getLogger(__name__)


class InputValidator:
    """
    Input validation utilities for lingstat.

    Provides validation methods for:
    - File and directory paths
    - Text corpus locations
    - Tokenlist data frames
    - Mixed-model formulas
    - Language and model names
    - Part-of-speech tag selections
    """

    MODEL_NAME_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_.\-]*$')
    RANDOM_TERM_PATTERN = re.compile(r'\(([^()|]*)\|([^()|]*)\)')

    SUPPORTED_TEXT_FORMATS = ['.txt']
    SUPPORTED_TABLE_FORMATS = ['.csv']

    UNIVERSAL_POS_TAGS = {
        "ADJ", "ADP", "ADV", "AUX", "CCONJ", "DET", "INTJ", "NOUN", "NUM", "PART",
        "PRON", "PROPN", "PUNCT", "SCONJ", "SYM", "VERB", "X", "SPACE",
        "ENTITY", "NOUN_PHRASE",
    }

    @classmethod
    def validate_file_path(cls, file_path: Union[str, Path], must_exist: bool = True,
                           extensions: Optional[List[str]] = None) -> Path:
        """
        Validate a file path.

        Args:
            file_path: Path to validate
            must_exist: Whether the file must exist
            extensions: List of allowed extensions (with dots)

        Returns:
            Validated Path object

        Raises:
            ValidationError: If path is invalid
        """
        try:
            if isinstance(file_path, str):
                file_path = Path(file_path)

            if not isinstance(file_path, Path):
                raise ValidationError("File path must be a string or Path object")

            if not file_path.is_absolute():
                file_path = file_path.resolve()

            if must_exist:
                if not file_path.exists():
                    raise ValidationError(f"File does not exist: {file_path}")

                if not file_path.is_file():
                    raise ValidationError(f"Path is not a file: {file_path}")

            if extensions:
                if file_path.suffix.lower() not in [ext.lower() for ext in extensions]:
                    valid_exts = ', '.join(extensions)
                    raise ValidationError(f"File must have one of these extensions: {valid_exts}")

            return file_path

        except ValidationError:
            raise
        except Exception as e:
            raise ValidationError(f"Invalid file path: {e}")

    @classmethod
    def validate_directory_path(cls, dir_path: Union[str, Path], must_exist: bool = True,
                                create_if_missing: bool = False) -> Path:
        """
        Validate a directory path.

        Args:
            dir_path: Path to validate
            must_exist: Whether the directory must exist
            create_if_missing: Whether to create the directory if it doesn't exist

        Returns:
            Validated Path object

        Raises:
            ValidationError: If path is invalid
        """
        try:
            if isinstance(dir_path, str):
                dir_path = Path(dir_path)

            if not isinstance(dir_path, Path):
                raise ValidationError("Directory path must be a string or Path object")

            if not dir_path.is_absolute():
                dir_path = dir_path.resolve()

            if not dir_path.exists():
                if create_if_missing:
                    try:
                        dir_path.mkdir(parents=True, exist_ok=True)
                        log.info(f"Created directory: {dir_path}")
                    except Exception as e:
                        raise ValidationError(f"Failed to create directory: {e}")
                elif must_exist:
                    raise ValidationError(f"Directory does not exist: {dir_path}")
            elif not dir_path.is_dir():
                raise ValidationError(f"Path is not a directory: {dir_path}")

            return dir_path

        except ValidationError:
            raise
        except Exception as e:
            raise ValidationError(f"Invalid directory path: {e}")

    @classmethod
    def validate_text_source(cls, path: Union[str, Path]) -> Path:
        """
        Validate a corpus location: a directory of text files or a CSV table.

        Args:
            path: Directory or CSV file path

        Returns:
            Validated Path object
        """
        path = Path(path)
        if path.is_dir():
            return cls.validate_directory_path(path)
        return cls.validate_file_path(path, extensions=cls.SUPPORTED_TABLE_FORMATS)

    @classmethod
    def validate_tokens_frame(cls, frame: pd.DataFrame, required: Sequence[str]) -> pd.DataFrame:
        """
        Validate that a data frame carries the columns of a tokenlist.

        Args:
            frame: Candidate data frame
            required: Column names that must be present

        Returns:
            The same data frame

        Raises:
            ValidationError: If the object is not a frame or misses columns
        """
        if not isinstance(frame, pd.DataFrame):
            raise ValidationError("Tokens must be a pandas DataFrame")

        missing = [column for column in required if column not in frame.columns]
        if missing:
            raise ValidationError(f"Tokenlist is missing required columns: {missing}")

        return frame

    @classmethod
    def validate_formula(cls, formula: str) -> str:
        """
        Validate the surface syntax of a mixed-model formula.

        Args:
            formula: Formula such as ``y ~ x + (1 | group)``

        Returns:
            Stripped formula

        Raises:
            ValidationError: If the formula is malformed
        """
        if not formula or not isinstance(formula, str):
            raise ValidationError("Formula must be a non-empty string")

        formula = formula.strip()
        if formula.count("~") != 1:
            raise ValidationError(f"Formula must contain exactly one '~': {formula}")

        response, _, rhs = formula.partition("~")
        if not response.strip():
            raise ValidationError(f"Formula has no response variable: {formula}")
        if not rhs.strip():
            raise ValidationError(f"Formula has no predictors: {formula}")

        depth = 0
        for char in formula:
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
            if depth < 0:
                break
        if depth != 0:
            raise ValidationError(f"Unbalanced parentheses in formula: {formula}")

        return formula

    @classmethod
    def validate_model_name(cls, model_name: str) -> str:
        """
        Validate a language model name such as ``en_core_web_sm``.

        Args:
            model_name: Model package name or identifier

        Returns:
            Stripped model name
        """
        if not model_name or not isinstance(model_name, str):
            raise ValidationError("Model name must be a non-empty string")

        model_name = model_name.strip()
        if not cls.MODEL_NAME_PATTERN.match(model_name):
            raise ValidationError(f"Invalid model name: {model_name}")

        return model_name

    @classmethod
    def validate_language(cls, language: str, known: Iterable[str]) -> str:
        """
        Validate a language identifier against a known set.

        Args:
            language: Language or treebank name (case-insensitive)
            known: Accepted identifiers

        Returns:
            Normalized (lowercase) identifier
        """
        if not language or not isinstance(language, str):
            raise ValidationError("Language must be a non-empty string")

        normalized = language.strip().lower()
        known = set(known)
        if normalized not in known:
            raise ValidationError(f"Unsupported language: {language}", value=language)

        return normalized

    @classmethod
    def validate_pos_tags(cls, tags: Optional[Iterable[str]]) -> Optional[List[str]]:
        """
        Validate a selection of part-of-speech tags.

        Unknown tags are allowed (taggers may emit language-specific sets)
        but are logged.

        Args:
            tags: Tags to keep, or None for no filtering

        Returns:
            Uppercased list of tags, or None
        """
        if tags is None:
            return None

        if isinstance(tags, str):
            tags = [tags]

        result = []
        for tag in tags:
            if not isinstance(tag, str) or not tag.strip():
                raise ValidationError("Part-of-speech tags must be non-empty strings")
            tag = tag.strip().upper()
            if tag not in cls.UNIVERSAL_POS_TAGS:
                log.warning(f"Part-of-speech tag is not a universal tag: {tag}")
            result.append(tag)

        if not result:
            raise ValidationError("Part-of-speech selection cannot be empty")

        return result

    @classmethod
    def is_valid_formula(cls, formula: str) -> bool:
        """Check formula syntax without raising."""
        try:
            cls.validate_formula(formula)
            return True
        except ValidationError:
            return False

    @classmethod
    def is_valid_model_name(cls, model_name: str) -> bool:
        """Check model name without raising."""
        try:
            cls.validate_model_name(model_name)
            return True
        except ValidationError:
            return False
