import os
import copy
import json
import logging
from pathlib import Path
from typing import Any, List, Optional

CONFIG_ENV_VAR = 'KNOWLEDGE_ENGINE_CONFIG'

DEFAULT_CONFIG = {
    "chunking": {
        "max_chunk_tokens": 500,
        "overlap_tokens": 50,
        "min_chunk_tokens": 100
    },
    "embeddings": {
        "provider": "voyage",
        "model": "voyage-large-2",
        "base_url": "https://api.voyageai.com/v1",
        "api_key": None,
        "dimension": None,
        "validate_dimension": True,
        "batch_size": 128,
        "max_concurrent_requests": 5,
        "rate_limit_requests": 300,
        "rate_limit_period": 60.0,
        "request_timeout": 30.0,
        "retry": {
            "max_attempts": 3,
            "base_delay": 1.0,
            "max_delay": 30.0,
            "exponential_base": 2.0,
            "jitter_factor": 0.1
        }
    },
    "deduplication": {
        "enabled": True,
        "semantic_threshold": 0.95,
        "fuzzy_threshold": 0.80,
        "fuzzy_upper_bound": 0.95,
        "fuzzy_same_category_only": True
    },
    "index": {
        "default_limit": 10,
        "default_threshold": 0.7
    },
    "ingestion": {
        "window_size": 128,
        "detect_duplicates": True
    },
    "database": {
        "backend": "memory",
        "persist_directory": "./chroma_knowledge",
        "knowledge_collection": "knowledge_entries",
        "group_collection": "duplicate_groups"
    },
    "server": {
        "host": "127.0.0.1",
        "port": 8080,
        "title": "Knowledge Ingestion & Deduplication Engine",
        "version": "1.0.0",
        "protocol_version": "2024-11-05"
    },
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        "file": "logs/knowledge_engine.log"
    }
}


class Config:
    """Configuration manager for the knowledge engine with JSON-based configuration and validation."""

    def __init__(self, config_path: str = None, overlay_path: str = None, setup_logging: bool = True):
        # Set up paths relative to project root
        self.project_root = Path(__file__).parent.parent.parent.parent

        # Explicit path, then environment variable, then config.json at the project root
        if config_path:
            self.config_path = config_path
        elif os.getenv(CONFIG_ENV_VAR):
            self.config_path = os.getenv(CONFIG_ENV_VAR)
        else:
            self.config_path = str(self.project_root / "config.json")

        self._config = self._merge_configs(self._get_default_config(), self._load_config())
        if overlay_path:
            self._config = self._merge_configs(self._config, self._load_json_file(Path(overlay_path)))

        if setup_logging:
            self._setup_logging()

    @classmethod
    def from_dict(cls, overrides: dict, setup_logging: bool = False) -> 'Config':
        """Build a configuration from defaults plus an in-memory overlay."""
        config = cls.__new__(cls)
        config.project_root = Path(__file__).parent.parent.parent.parent
        config.config_path = None
        config._config = config._merge_configs(config._get_default_config(), overrides or {})
        if setup_logging:
            config._setup_logging()
        return config

    def _load_config(self) -> dict:
        """Load configuration from JSON file"""
        config_file = Path(self.config_path)
        if not config_file.exists():
            logging.warning(f"Configuration file not found: {self.config_path}, using defaults")
            return {}

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logging.error(f"Failed to load configuration: {e}")
            return {}

        logging.info(f"Configuration loaded from {self.config_path}")
        return config

    def _get_default_config(self) -> dict:
        """Fallback default configuration"""
        return copy.deepcopy(DEFAULT_CONFIG)

    def _setup_logging(self):
        """Setup logging based on configuration"""
        log_config = self.get_logging_config()
        log_file = log_config.get('file')

        handlers: List[logging.Handler] = [logging.StreamHandler()]
        if log_file:
            # Ensure log directory exists
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_file))

        logging.basicConfig(
            level=getattr(logging, str(log_config.get('level', 'INFO')).upper(), logging.INFO),
            format=log_config.get('format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s'),
            handlers=handlers
        )

    def _load_json_file(self, file_path: Path) -> dict:
        """Load a JSON configuration file"""
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logging.warning(f"Failed to load config file {file_path}: {e}")
            return {}

    def _merge_configs(self, base: dict, overlay: dict) -> dict:
        """Deep merge two configuration dictionaries"""
        result = base.copy()
        for key, value in overlay.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value
        return result

    def get(self, *keys, default=None) -> Any:
        """Get nested configuration value using dot notation"""
        value = self._config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def as_dict(self) -> dict:
        return copy.deepcopy(self._config)

    def validate(self) -> List[str]:
        """Return a list of configuration errors (empty when valid)."""
        return validate_config_dict(self._config)

    def get_chunking_config(self) -> dict:
        """Get chunking configuration"""
        return self.get('chunking', default={})

    def get_embeddings_config(self) -> dict:
        """Get embeddings configuration"""
        return self.get('embeddings', default={})

    def get_deduplication_config(self) -> dict:
        """Get deduplication configuration"""
        return self.get('deduplication', default={})

    def get_index_config(self) -> dict:
        """Get knowledge index configuration"""
        return self.get('index', default={})

    def get_ingestion_config(self) -> dict:
        """Get ingestion pipeline configuration"""
        return self.get('ingestion', default={})

    def get_database_config(self) -> dict:
        """Get database configuration"""
        return self.get('database', default={})

    def get_server_config(self) -> dict:
        """Get server configuration"""
        return self.get('server', default={})

    def get_logging_config(self) -> dict:
        """Get logging configuration"""
        return self.get('logging', default={})


def validate_config_dict(config: dict) -> List[str]:
    """Check value ranges and cross-field constraints of a configuration dict."""
    errors = []

    chunking = config.get('chunking', {})
    max_tokens = chunking.get('max_chunk_tokens', 500)
    if not isinstance(max_tokens, int) or max_tokens < 1:
        errors.append("chunking.max_chunk_tokens must be a positive integer")
    elif chunking.get('overlap_tokens', 50) >= max_tokens:
        errors.append("chunking.overlap_tokens must be smaller than chunking.max_chunk_tokens")
    if chunking.get('min_chunk_tokens', 100) < 0:
        errors.append("chunking.min_chunk_tokens must be >= 0")

    embeddings = config.get('embeddings', {})
    for key in ('batch_size', 'max_concurrent_requests', 'rate_limit_requests'):
        value = embeddings.get(key, 1)
        if not isinstance(value, int) or value < 1:
            errors.append(f"embeddings.{key} must be a positive integer")
    for key in ('rate_limit_period', 'request_timeout'):
        value = embeddings.get(key, 1.0)
        if not isinstance(value, (int, float)) or value <= 0:
            errors.append(f"embeddings.{key} must be a positive number")
    if embeddings.get('retry', {}).get('max_attempts', 3) < 1:
        errors.append("embeddings.retry.max_attempts must be >= 1")

    dedup = config.get('deduplication', {})
    semantic = dedup.get('semantic_threshold', 0.95)
    fuzzy = dedup.get('fuzzy_threshold', 0.80)
    upper = dedup.get('fuzzy_upper_bound', 0.95)
    if not 0.0 <= semantic <= 1.0:
        errors.append("deduplication.semantic_threshold must be within 0-1")
    if not 0.0 <= fuzzy <= 1.0:
        errors.append("deduplication.fuzzy_threshold must be within 0-1")
    if upper is not None and upper <= fuzzy:
        errors.append("deduplication.fuzzy_upper_bound must be greater than fuzzy_threshold")

    index = config.get('index', {})
    if not isinstance(index.get('default_limit', 10), int) or index.get('default_limit', 10) < 1:
        errors.append("index.default_limit must be a positive integer")

    database = config.get('database', {})
    if database.get('backend', 'memory') not in ('memory', 'chroma'):
        errors.append("database.backend must be 'memory' or 'chroma'")

    server = config.get('server', {})
    port = server.get('port', 8080)
    if not isinstance(port, int) or port < 1 or port > 65535:
        errors.append("server.port must be a valid port number (1-65535)")

    level = str(config.get('logging', {}).get('level', 'INFO')).upper()
    if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
        errors.append(f"logging.level '{level}' is not a valid level")

    return errors
