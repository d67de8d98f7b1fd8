# Copyright (c) 2025 Dave Tofflemire, SigilDERG Project
# Licensed under the GNU Affero General Public License v3.0 (AGPLv3).
# Commercial licenses are available. Contact: davetmire85@gmail.com

"""
Configuration loader for llm-search.

Loads configuration from config.json file with fallback to environment variables.
"""

import os
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_DIMENSION = 384
DEFAULT_INDEX_EXTENSIONS = [".go", ".py", ".js", ".md", ".txt", ".yaml", ".json"]
DEFAULT_EXCLUDED_PATHS = [".git", ".env", "*.key", "*.pem"]
DEFAULT_MAX_FILE_SIZE = 1 * 1024 * 1024
DEFAULT_PROVIDER_ORDER = ["python", "ollama"]
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def _parse_csv_list(raw_value: Optional[str]) -> list[str]:
    """Parse comma-separated environment variable values into a list."""
    if not raw_value:
        return []
    return [item.strip() for item in raw_value.split(",") if item.strip()]


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Config:
    """Configuration manager for llm-search."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to config.json file. If None, searches in:
                1. ./config.json (current directory)
                2. ~/.llm_search/config.json
                3. Falls back to environment variables
        """
        self.config_data: Dict[str, Any] = {}
        self._load_config(config_path)
        self._validate_embeddings_dimension()

    def _load_config(self, config_path: Optional[Path] = None):
        """Load configuration from file or environment."""
        if config_path:
            if config_path.exists():
                self._load_from_file(config_path)
                return
            logger.info(
                "Config path %s does not exist, using environment variables",
                config_path,
            )
            self._load_from_env()
            return

        local_config = Path("config.json")
        if local_config.exists():
            self._load_from_file(local_config)
            return

        user_config = Path.home() / ".llm_search" / "config.json"
        if user_config.exists():
            self._load_from_file(user_config)
            return

        logger.info("No config.json found, using environment variables")
        self._load_from_env()

    def _validate_embeddings_dimension(self) -> None:
        """Validate the configured embeddings dimension and warn on mismatch."""
        dimension_value = self.get("embeddings.dimension")
        if dimension_value is None:
            self.config_data.setdefault("embeddings", {}).setdefault(
                "dimension", DEFAULT_EMBEDDING_DIMENSION
            )
            return

        try:
            dimension = int(dimension_value)
        except (TypeError, ValueError):
            logger.warning(
                "Invalid embeddings.dimension '%s', defaulting to %s",
                dimension_value,
                DEFAULT_EMBEDDING_DIMENSION,
            )
            self.config_data.setdefault("embeddings", {})[
                "dimension"
            ] = DEFAULT_EMBEDDING_DIMENSION
            return

        if dimension != DEFAULT_EMBEDDING_DIMENSION:
            logger.warning(
                "Configured embeddings.dimension %s differs from default %s. "
                "Ensure the selected embedding model matches this dimension.",
                dimension,
                DEFAULT_EMBEDDING_DIMENSION,
            )

        self.config_data.setdefault("embeddings", {})["dimension"] = dimension

    def _load_from_file(self, path: Path):
        """Load configuration from JSON file."""
        try:
            with open(path, "r") as f:
                self.config_data = json.load(f)
            logger.info("Loaded configuration from %s", path)
        except (OSError, ValueError) as e:
            logger.error("Error loading config from %s: %s", path, e)
            self._load_from_env()

    def _load_from_env(self):
        """Load configuration from environment variables."""
        search: Dict[str, Any] = {
            "enabled": _env_flag("LLM_SEARCH_ENABLED", "false"),
            "vector_db_path": os.getenv("LLM_SEARCH_DB_PATH", "./embeddings.db"),
            "repository_root": os.getenv("LLM_SEARCH_REPO_ROOT", "."),
            "max_results": int(os.getenv("LLM_SEARCH_MAX_RESULTS", "10")),
            "min_similarity_score": float(os.getenv("LLM_SEARCH_MIN_SCORE", "0.7")),
        }
        extensions = _parse_csv_list(os.getenv("LLM_SEARCH_EXTENSIONS"))
        if extensions:
            search["index_extensions"] = extensions
        excluded = _parse_csv_list(os.getenv("LLM_SEARCH_EXCLUDED"))
        if excluded:
            search["excluded_paths"] = excluded

        self.config_data = {
            "server": {
                "log_level": os.getenv("LLM_SEARCH_LOG_LEVEL", "INFO"),
            },
            "search": search,
            "embeddings": {
                "provider": os.getenv("LLM_SEARCH_PROVIDER", "auto"),
                "model": os.getenv("LLM_SEARCH_MODEL", "all-MiniLM-L6-v2"),
                "python_path": os.getenv("LLM_SEARCH_PYTHON_PATH", "python3"),
                "ollama_url": os.getenv("LLM_SEARCH_OLLAMA_URL", "http://localhost:11434"),
                "ollama_model": os.getenv("LLM_SEARCH_OLLAMA_MODEL", "all-minilm"),
            },
            "admin": self._load_admin_from_env(),
        }

    def _load_admin_from_env(self) -> Dict[str, Any]:
        """Load admin config from environment variables."""
        allowed_ips_raw = os.getenv("LLM_SEARCH_ADMIN_ALLOWED_IPS", "127.0.0.1,::1")
        return {
            "enabled": _env_flag("LLM_SEARCH_ADMIN_ENABLED", "true"),
            "host": os.getenv("LLM_SEARCH_ADMIN_HOST", "127.0.0.1"),
            "port": int(os.getenv("LLM_SEARCH_ADMIN_PORT", "8765")),
            "api_key": os.getenv("LLM_SEARCH_ADMIN_API_KEY") or None,
            "allowed_ips": _parse_csv_list(allowed_ips_raw),
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by dot-notation key."""
        keys = key.split(".")
        value = self.config_data
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
        return value if value is not None else default

    @property
    def log_level(self) -> str:
        return self.get("server.log_level", "INFO")

    @property
    def log_file(self) -> Optional[str]:
        """Get log file path from config or environment."""
        env_log_file = os.getenv("LLM_SEARCH_LOG_FILE")
        if env_log_file:
            return env_log_file
        return self.get("server.log_file") or None

    @property
    def search_enabled(self) -> bool:
        return bool(self.get("search.enabled", False))

    @property
    def repository_root(self) -> Path:
        return Path(self.get("search.repository_root", ".")).expanduser().resolve()

    @property
    def vector_db_path(self) -> str:
        return self.get("search.vector_db_path", "./embeddings.db")

    @property
    def max_results(self) -> int:
        return int(self.get("search.max_results", 10))

    @property
    def min_similarity_score(self) -> float:
        return float(self.get("search.min_similarity_score", 0.7))

    @property
    def max_preview_length(self) -> int:
        return int(self.get("search.max_preview_length", 100))

    @property
    def max_embed_tokens(self) -> int:
        return int(self.get("search.max_embed_tokens", 200))

    @property
    def index_extensions(self) -> list[str]:
        return list(self.get("search.index_extensions", DEFAULT_INDEX_EXTENSIONS))

    @property
    def excluded_paths(self) -> list[str]:
        return list(self.get("search.excluded_paths", DEFAULT_EXCLUDED_PATHS))

    @property
    def max_file_size(self) -> int:
        return int(self.get("search.max_file_size", DEFAULT_MAX_FILE_SIZE))

    @property
    def heuristic_ranking(self) -> bool:
        """Whether path/recency boosts are layered over raw similarity."""
        return bool(self.get("search.heuristic_ranking", False))

    @property
    def embeddings_provider(self) -> str:
        """Get embedding provider kind (auto, python or ollama)."""
        return self.get("embeddings.provider", "auto")

    @property
    def embeddings_provider_order(self) -> list[str]:
        """Providers probed, in order, when the provider is ``auto``."""
        return list(self.get("embeddings.provider_order", DEFAULT_PROVIDER_ORDER))

    @property
    def embeddings_model(self) -> str:
        return self.get("embeddings.model", "all-MiniLM-L6-v2")

    @property
    def embeddings_dimension(self) -> int:
        """Get embedding dimension."""
        value = self.get("embeddings.dimension", DEFAULT_EMBEDDING_DIMENSION)
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(
                "Invalid embeddings.dimension '%s', defaulting to %s",
                value,
                DEFAULT_EMBEDDING_DIMENSION,
            )
            return DEFAULT_EMBEDDING_DIMENSION

    @property
    def python_path(self) -> str:
        return self.get("embeddings.python_path", "python3")

    @property
    def ollama_url(self) -> str:
        return str(self.get("embeddings.ollama_url", "http://localhost:11434")).rstrip("/")

    @property
    def ollama_model(self) -> str:
        """Model requested from Ollama; all-minilm matches the 384-dim default."""
        return self.get("embeddings.ollama_model", "all-minilm")

    @property
    def request_timeout(self) -> float:
        return float(self.get("embeddings.request_timeout", 30.0))

    # --- Admin API configuration ---

    @property
    def admin_enabled(self) -> bool:
        return self.get("admin.enabled", True)

    @property
    def admin_host(self) -> str:
        return self.get("admin.host", "127.0.0.1")

    @property
    def admin_port(self) -> int:
        return int(self.get("admin.port", 8765))

    @property
    def admin_api_key(self) -> Optional[str]:
        return self.get("admin.api_key")

    @property
    def admin_allowed_ips(self) -> list[str]:
        return self.get("admin.allowed_ips", ["127.0.0.1", "::1"])


@dataclass(frozen=True)
class SearchConfig:
    """Immutable settings consumed by one search engine instance."""

    enabled: bool = False
    vector_db_path: str = "./embeddings.db"
    embedding_provider: str = "auto"
    provider_order: tuple[str, ...] = tuple(DEFAULT_PROVIDER_ORDER)
    python_path: str = "python3"
    ollama_url: str = "http://localhost:11434"
    embedding_model: str = "all-MiniLM-L6-v2"
    ollama_model: str = "all-minilm"
    embedding_dimension: int = DEFAULT_EMBEDDING_DIMENSION
    max_results: int = 10
    min_similarity_score: float = 0.7
    max_preview_length: int = 100
    max_embed_tokens: int = 200
    index_extensions: tuple[str, ...] = tuple(DEFAULT_INDEX_EXTENSIONS)
    excluded_paths: tuple[str, ...] = tuple(DEFAULT_EXCLUDED_PATHS)
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    heuristic_ranking: bool = False
    request_timeout: float = 30.0

    @classmethod
    def from_config(cls, config: Config) -> "SearchConfig":
        return cls(
            enabled=config.search_enabled,
            vector_db_path=config.vector_db_path,
            embedding_provider=config.embeddings_provider,
            provider_order=tuple(config.embeddings_provider_order),
            python_path=config.python_path,
            ollama_url=config.ollama_url,
            embedding_model=config.embeddings_model,
            ollama_model=config.ollama_model,
            embedding_dimension=config.embeddings_dimension,
            max_results=config.max_results,
            min_similarity_score=config.min_similarity_score,
            max_preview_length=config.max_preview_length,
            max_embed_tokens=config.max_embed_tokens,
            index_extensions=tuple(config.index_extensions),
            excluded_paths=tuple(config.excluded_paths),
            max_file_size=config.max_file_size,
            heuristic_ranking=config.heuristic_ranking,
            request_timeout=config.request_timeout,
        )


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure root logging for CLI and admin entry points."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def load_config(config_path: Optional[Path] = None):
    """Load configuration from specified path."""
    global _config
    _config = Config(config_path)
    return _config
