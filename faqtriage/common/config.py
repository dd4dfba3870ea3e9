"""
Configuration Management for FAQ Triage

Loads configuration from ~/.faqtriage/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict

from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger("faqtriage.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".faqtriage"
CONFIG_PATH = CONFIG_DIR / "config.json"
DATA_DIR = CONFIG_DIR / "data"
LOGS_DIR = CONFIG_DIR / "logs"

# Project paths (relative to this file)
PROJECT_ROOT = Path(__file__).parent.parent.parent
PATTERNS_DIR = PROJECT_ROOT / "patterns"

MATCHER_STRATEGIES = ("vector", "judged")
STORE_BACKENDS = ("memory", "sqlite")
LLM_PROVIDERS = ("anthropic", "openai", "google")


@dataclass
class EmbeddingConfig:
    """Embedding model configuration"""
    model: str = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"
    timeout_seconds: float = 20.0


@dataclass
class LLMConfig:
    """LLM provider configuration for the semantic judge"""
    provider: str = "google"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-haiku-4-5-20251001"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-1.5-flash"
    timeout_seconds: float = 30.0
    required: bool = False  # Fail at startup when no judge can be built

    @property
    def model(self) -> str:
        return {
            "anthropic": self.anthropic_model,
            "openai": self.openai_model,
            "google": self.google_model,
        }.get(self.provider, "")


@dataclass
class ClassifierConfig:
    """Question classifier configuration"""
    rules_path: str = ""  # Empty: built-in rule set


@dataclass
class MatcherConfig:
    """Similarity matcher configuration"""
    strategy: str = "judged"  # "vector" or "judged"
    similarity_threshold: float = 0.45
    confidence_tiers: Dict[str, float] = field(
        default_factory=lambda: {"HIGH": 0.65, "MEDIUM": 0.45, "LOW": 0.35}
    )
    max_concurrent_judge_calls: int = 8
    claims_enabled: bool = True
    claim_ttl_seconds: float = 120.0


@dataclass
class CorrelatorConfig:
    """Answer correlator configuration"""
    answer_window_hours: int = 24


@dataclass
class StoreConfig:
    """Knowledge store configuration"""
    backend: str = "sqlite"  # "memory" or "sqlite"
    sqlite_path: str = str(DATA_DIR / "knowledge.db")


@dataclass
class SlackConfig:
    """Slack integration configuration"""
    bot_token: str = ""
    signing_secret: str = ""
    forum_channel_id: str = ""  # Empty: start threads under the question itself


@dataclass
class ServerConfig:
    """HTTP server configuration"""
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"
    notify_on_failure: bool = True


@dataclass
class TriageOptions:
    """Flat tuning options handed to the triage components"""
    similarity_threshold: float = 0.45
    confidence_tiers: Dict[str, float] = field(
        default_factory=lambda: {"HIGH": 0.65, "MEDIUM": 0.45, "LOW": 0.35}
    )
    answer_window_hours: int = 24


@dataclass
class TriageConfig:
    """Main FAQ triage configuration"""
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    matcher: MatcherConfig = field(default_factory=MatcherConfig)
    correlator: CorrelatorConfig = field(default_factory=CorrelatorConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    slack: SlackConfig = field(default_factory=SlackConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)

    def to_options(self) -> TriageOptions:
        return TriageOptions(
            similarity_threshold=self.matcher.similarity_threshold,
            confidence_tiers=dict(self.matcher.confidence_tiers),
            answer_window_hours=self.correlator.answer_window_hours,
        )


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    embedding_data = data.get("embedding", {})
    defaults = EmbeddingConfig()
    return EmbeddingConfig(
        model=embedding_data.get("model", defaults.model),
        timeout_seconds=embedding_data.get("timeout_seconds", defaults.timeout_seconds),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    llm_data = data.get("llm", {})
    defaults = LLMConfig()
    return LLMConfig(
        provider=llm_data.get("provider", defaults.provider),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", defaults.anthropic_model),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", defaults.openai_model),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", defaults.google_model),
        timeout_seconds=llm_data.get("timeout_seconds", defaults.timeout_seconds),
        required=llm_data.get("required", defaults.required),
    )


def _parse_matcher_config(data: dict) -> MatcherConfig:
    matcher_data = data.get("matcher", {})
    defaults = MatcherConfig()
    tiers = dict(defaults.confidence_tiers)
    tiers.update({k.upper(): v for k, v in matcher_data.get("confidence_tiers", {}).items()})
    return MatcherConfig(
        strategy=matcher_data.get("strategy", defaults.strategy),
        similarity_threshold=matcher_data.get("similarity_threshold", defaults.similarity_threshold),
        confidence_tiers=tiers,
        max_concurrent_judge_calls=matcher_data.get(
            "max_concurrent_judge_calls", defaults.max_concurrent_judge_calls
        ),
        claims_enabled=matcher_data.get("claims_enabled", defaults.claims_enabled),
        claim_ttl_seconds=matcher_data.get("claim_ttl_seconds", defaults.claim_ttl_seconds),
    )


def _parse_store_config(data: dict) -> StoreConfig:
    store_data = data.get("store", {})
    defaults = StoreConfig()
    return StoreConfig(
        backend=store_data.get("backend", defaults.backend),
        sqlite_path=store_data.get("sqlite_path", defaults.sqlite_path),
    )


def _parse_slack_config(data: dict) -> SlackConfig:
    slack_data = data.get("slack", {})
    return SlackConfig(
        bot_token=slack_data.get("bot_token", ""),
        signing_secret=slack_data.get("signing_secret", ""),
        forum_channel_id=slack_data.get("forum_channel_id", ""),
    )


def _parse_server_config(data: dict) -> ServerConfig:
    server_data = data.get("server", {})
    defaults = ServerConfig()
    return ServerConfig(
        host=server_data.get("host", defaults.host),
        port=server_data.get("port", defaults.port),
        log_level=server_data.get("log_level", defaults.log_level),
        notify_on_failure=server_data.get("notify_on_failure", defaults.notify_on_failure),
    )


def load_config() -> TriageConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (a local .env file is read first)
    2. Config file (~/.faqtriage/config.json)
    3. Default values
    """
    load_dotenv()
    config = TriageConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.embedding = _parse_embedding_config(data)
            config.llm = _parse_llm_config(data)
            config.classifier = ClassifierConfig(
                rules_path=data.get("classifier", {}).get("rules_path", "")
            )
            config.matcher = _parse_matcher_config(data)
            config.correlator = CorrelatorConfig(
                answer_window_hours=data.get("correlator", {}).get("answer_window_hours", 24)
            )
            config.store = _parse_store_config(data)
            config.slack = _parse_slack_config(data)
            config.server = _parse_server_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")
    if os.getenv("FAQ_MATCHER_STRATEGY"):
        config.matcher.strategy = os.getenv("FAQ_MATCHER_STRATEGY")
    if os.getenv("FAQ_SIMILARITY_THRESHOLD"):
        config.matcher.similarity_threshold = float(os.getenv("FAQ_SIMILARITY_THRESHOLD"))
    if os.getenv("FAQ_ANSWER_WINDOW_HOURS"):
        config.correlator.answer_window_hours = int(os.getenv("FAQ_ANSWER_WINDOW_HOURS"))
    if os.getenv("FAQ_RULES_PATH"):
        config.classifier.rules_path = os.getenv("FAQ_RULES_PATH")
    if os.getenv("FAQ_STORE_BACKEND"):
        config.store.backend = os.getenv("FAQ_STORE_BACKEND")
    if os.getenv("FAQ_SQLITE_PATH"):
        config.store.sqlite_path = os.getenv("FAQ_SQLITE_PATH")
    if os.getenv("FAQ_PORT"):
        config.server.port = int(os.getenv("FAQ_PORT"))
    if os.getenv("FAQ_LOG_LEVEL"):
        config.server.log_level = os.getenv("FAQ_LOG_LEVEL")

    # Secrets: track which ones came from the environment so save_config skips them
    _env_secret_map = {
        "ANTHROPIC_API_KEY": ("llm", "anthropic_api_key"),
        "OPENAI_API_KEY": ("llm", "openai_api_key"),
        "GOOGLE_API_KEY": ("llm", "google_api_key"),
        "GEMINI_API_KEY": ("llm", "google_api_key"),
        "SLACK_BOT_TOKEN": ("slack", "bot_token"),
        "SLACK_SIGNING_SECRET": ("slack", "signing_secret"),
    }
    for env_var, (section, attr) in _env_secret_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(getattr(config, section), attr, val)
            config._env_sourced_keys.add(attr)

    if os.getenv("FAQ_LLM_PROVIDER"):
        config.llm.provider = os.getenv("FAQ_LLM_PROVIDER")
    if os.getenv("SLACK_FORUM_CHANNEL"):
        config.slack.forum_channel_id = os.getenv("SLACK_FORUM_CHANNEL")

    return config


def validate_config(config: TriageConfig) -> None:
    """
    Check a loaded configuration before any message is processed.

    Raises:
        ConfigError: describing every problem found
    """
    problems = []

    threshold = config.matcher.similarity_threshold
    if threshold is None or not 0.0 <= threshold <= 1.0:
        problems.append(f"matcher.similarity_threshold must be within [0, 1], got {threshold!r}")

    tiers = config.matcher.confidence_tiers
    missing = [name for name in ("HIGH", "MEDIUM", "LOW") if name not in tiers]
    if missing:
        problems.append(f"matcher.confidence_tiers missing {', '.join(missing)}")
    else:
        if not all(0.0 <= tiers[name] <= 1.0 for name in ("HIGH", "MEDIUM", "LOW")):
            problems.append("matcher.confidence_tiers values must be within [0, 1]")
        if not tiers["HIGH"] >= tiers["MEDIUM"] >= tiers["LOW"]:
            problems.append("matcher.confidence_tiers must satisfy HIGH >= MEDIUM >= LOW")

    if config.matcher.strategy not in MATCHER_STRATEGIES:
        problems.append(f"matcher.strategy must be one of {MATCHER_STRATEGIES}, got {config.matcher.strategy!r}")
    if config.matcher.max_concurrent_judge_calls < 1:
        problems.append("matcher.max_concurrent_judge_calls must be at least 1")

    if config.correlator.answer_window_hours <= 0:
        problems.append("correlator.answer_window_hours must be positive")

    if config.store.backend not in STORE_BACKENDS:
        problems.append(f"store.backend must be one of {STORE_BACKENDS}, got {config.store.backend!r}")
    if config.store.backend == "sqlite" and not config.store.sqlite_path:
        problems.append("store.sqlite_path is required for the sqlite backend")

    if config.llm.provider not in LLM_PROVIDERS:
        problems.append(f"llm.provider must be one of {LLM_PROVIDERS}, got {config.llm.provider!r}")
    elif config.llm.required or config.matcher.strategy == "judged":
        key = getattr(config.llm, f"{config.llm.provider}_api_key", "")
        if not key:
            problems.append(f"llm.{config.llm.provider}_api_key is required for the semantic judge")

    if problems:
        raise ConfigError("Invalid configuration: " + "; ".join(problems))


def save_config(config: TriageConfig) -> None:
    """Save configuration to file.

    Secrets that were sourced from environment variables are written as
    empty strings so they are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    def _secret(attr: str, value: str) -> str:
        return "" if attr in env_sourced else value

    data = {
        "embedding": {
            "model": config.embedding.model,
            "timeout_seconds": config.embedding.timeout_seconds,
        },
        "llm": {
            "provider": config.llm.provider,
            "anthropic_api_key": _secret("anthropic_api_key", config.llm.anthropic_api_key),
            "anthropic_model": config.llm.anthropic_model,
            "openai_api_key": _secret("openai_api_key", config.llm.openai_api_key),
            "openai_model": config.llm.openai_model,
            "google_api_key": _secret("google_api_key", config.llm.google_api_key),
            "google_model": config.llm.google_model,
            "timeout_seconds": config.llm.timeout_seconds,
            "required": config.llm.required,
        },
        "classifier": {
            "rules_path": config.classifier.rules_path,
        },
        "matcher": {
            "strategy": config.matcher.strategy,
            "similarity_threshold": config.matcher.similarity_threshold,
            "confidence_tiers": dict(config.matcher.confidence_tiers),
            "max_concurrent_judge_calls": config.matcher.max_concurrent_judge_calls,
            "claims_enabled": config.matcher.claims_enabled,
            "claim_ttl_seconds": config.matcher.claim_ttl_seconds,
        },
        "correlator": {
            "answer_window_hours": config.correlator.answer_window_hours,
        },
        "store": {
            "backend": config.store.backend,
            "sqlite_path": config.store.sqlite_path,
        },
        "slack": {
            "bot_token": _secret("bot_token", config.slack.bot_token),
            "signing_secret": _secret("signing_secret", config.slack.signing_secret),
            "forum_channel_id": config.slack.forum_channel_id,
        },
        "server": {
            "host": config.server.host,
            "port": config.server.port,
            "log_level": config.server.log_level,
            "notify_on_failure": config.server.notify_on_failure,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
