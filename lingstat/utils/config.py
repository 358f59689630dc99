"""
Configuration management for lingstat.

This module provides configuration management, settings handling,
and package-wide parameter storage.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union
from dataclasses import dataclass, field, asdict

from .exceptions import ConfigurationError


log = logging.getLogger(__name__)


@dataclass
class Settings:
    """
    Toolkit settings and configuration parameters.

    Attributes:
        taggers: Tagger backends, model names and model locations
        corpus: Tokenlist and document-term-matrix defaults
        mixed_models: Mixed-effects fitting defaults
        processing: Processing-related settings
        output: Output format and location settings
    """
    taggers: Dict[str, Any] = field(default_factory=lambda: {
        "default_backend": "spacy",
        "spacy_model": "en_core_web_sm",
        "udpipe_language": "english-ewt",
        "udpipe_model_dir": str(Path.home() / ".cache" / "lingstat" / "udpipe"),
        "udpipe_model_path": None,
        "extract_entities": True,
        "extract_noun_phrases": False,
    })

    corpus: Dict[str, Any] = field(default_factory=lambda: {
        "dtm_feature": "lemma",
        "dtm_pos": ["NOUN", "PROPN", "ADJ", "VERB"],
        "lowercase": True,
        "min_count": 1,
        "min_docfreq": 1,
    })

    mixed_models: Dict[str, Any] = field(default_factory=lambda: {
        "reml": True,
        "method": "lbfgs",
        "maxiter": 200,
        "alpha": 0.05,
    })

    processing: Dict[str, Any] = field(default_factory=lambda: {
        "show_progress": True,
        "text_encoding": "utf-8",
        "min_text_length": 1,
    })

    output: Dict[str, Any] = field(default_factory=lambda: {
        "default_output_dir": "lingstat_results",
        "save_csv": True,
        "save_json": True,
        "float_precision": 4,
    })


class Config:
    """
    Configuration manager for lingstat.

    Provides centralized configuration management with support for:
    - Default settings
    - User configuration files
    - Runtime configuration changes
    """

    DEFAULT_CONFIG_FILE = "lingstat_config.json"
    USER_CONFIG_DIR = Path.home() / ".config" / "lingstat"

    SECTIONS = ("taggers", "corpus", "mixed_models", "processing", "output")

    def __init__(self, config_file: Optional[Union[str, Path]] = None) -> None:
        """
        Initialize configuration manager.

        Args:
            config_file: Optional path to configuration file
        """
        self.settings = Settings()
        self.config_file = config_file or self.USER_CONFIG_DIR / self.DEFAULT_CONFIG_FILE
        self._load_configuration()

    def _load_configuration(self) -> None:
        """Load configuration from file if it exists."""
        try:
            if isinstance(self.config_file, str):
                self.config_file = Path(self.config_file)

            if self.config_file.exists():
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    config_data = json.load(f)

                self._update_settings_from_dict(config_data)
                log.info(f"Configuration loaded from {self.config_file}")
            else:
                log.info("Using default configuration")

        except Exception as e:
            log.warning(f"Failed to load configuration from {self.config_file}: {e}")
            log.info("Using default configuration")

    def _update_settings_from_dict(self, config_dict: Dict[str, Any]) -> None:
        """Update settings from dictionary."""
        for section in self.SECTIONS:
            if section in config_dict:
                getattr(self.settings, section).update(config_dict[section])

    def save_configuration(self, config_file: Optional[Union[str, Path]] = None) -> None:
        """
        Save current configuration to file.

        Args:
            config_file: Optional path to save configuration file
        """
        try:
            save_path = config_file or self.config_file
            if isinstance(save_path, str):
                save_path = Path(save_path)

            save_path.parent.mkdir(parents=True, exist_ok=True)

            with open(save_path, 'w', encoding='utf-8') as f:
                json.dump(asdict(self.settings), f, indent=2, ensure_ascii=False)

            log.info(f"Configuration saved to {save_path}")

        except Exception as e:
            log.error(f"Failed to save configuration: {e}")
            raise

    def get_tagger_config(self) -> Dict[str, Any]:
        """Get tagger configuration."""
        return self.settings.taggers.copy()

    def set_tagger_config(self, config: Dict[str, Any]) -> None:
        """
        Set tagger configuration.

        Args:
            config: Tagger configuration dictionary
        """
        backend = config.get("default_backend")
        if backend is not None and backend not in ("spacy", "udpipe"):
            raise ConfigurationError(f"Unknown tagger backend: {backend}", "default_backend", str(backend))
        self.settings.taggers.update(config)
        log.info("Tagger configuration updated")

    def get_corpus_config(self) -> Dict[str, Any]:
        """Get corpus configuration."""
        return self.settings.corpus.copy()

    def set_corpus_config(self, config: Dict[str, Any]) -> None:
        """
        Set corpus configuration.

        Args:
            config: Corpus configuration dictionary
        """
        for key in ("min_count", "min_docfreq"):
            if key in config:
                value = config[key]
                if not isinstance(value, int) or value < 1:
                    raise ConfigurationError(f"{key} must be a positive integer", key, str(value))
        self.settings.corpus.update(config)
        log.info("Corpus configuration updated")

    def get_mixed_model_config(self) -> Dict[str, Any]:
        """Get mixed-model configuration."""
        return self.settings.mixed_models.copy()

    def set_mixed_model_config(self, config: Dict[str, Any]) -> None:
        """Set mixed-model configuration."""
        alpha = config.get("alpha")
        if alpha is not None and not (0.0 < float(alpha) < 1.0):
            raise ConfigurationError("alpha must be between 0.0 and 1.0", "alpha", str(alpha))
        self.settings.mixed_models.update(config)
        log.info("Mixed-model configuration updated")

    def get_processing_config(self) -> Dict[str, Any]:
        """Get processing configuration."""
        return self.settings.processing.copy()

    def get_output_config(self) -> Dict[str, Any]:
        """Get output configuration."""
        return self.settings.output.copy()

    def reset_to_defaults(self) -> None:
        """Reset all settings to default values."""
        self.settings = Settings()
        log.info("Configuration reset to defaults")

    def get_config_summary(self) -> str:
        """
        Get a summary of current configuration.

        Returns:
            Formatted configuration summary
        """
        summary = []
        summary.append("=== lingstat Configuration Summary ===")
        summary.append(f"Config file: {self.config_file}")

        for section in self.SECTIONS:
            summary.append("")
            summary.append(f"{section.replace('_', ' ').title()}:")
            for key, value in getattr(self.settings, section).items():
                summary.append(f"  {key}: {value}")

        return "\n".join(summary)

    def validate_configuration(self) -> bool:
        """
        Validate current configuration.

        Returns:
            True if configuration is valid
        """
        for section in self.SECTIONS:
            if not isinstance(getattr(self.settings, section), dict):
                return False

        if self.settings.taggers.get("default_backend") not in ("spacy", "udpipe"):
            return False

        corpus = self.settings.corpus
        if corpus.get("dtm_feature") not in ("token", "lemma"):
            return False
        for key in ("min_count", "min_docfreq"):
            value = corpus.get(key)
            if not isinstance(value, int) or value < 1:
                return False

        alpha = self.settings.mixed_models.get("alpha")
        if not isinstance(alpha, (int, float)) or not (0.0 < alpha < 1.0):
            return False

        return True
