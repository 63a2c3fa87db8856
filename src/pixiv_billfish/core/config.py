"""
Configuration management for Pixiv2Billfish
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from loguru import logger


DEFAULT_HEADERS = {
    "Host": "www.pixiv.net",
    "referer": "https://www.pixiv.net/",
    "origin": "https://accounts.pixiv.net",
    "accept-language": "zh-CN,zh;q=0.9",
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; WOW64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/56.0.2924.87 Safari/537.36"
    ),
}


@dataclass
class DatabaseConfig:
    """Configuration for the Billfish library database."""

    path: str = "billfish.db"  # Usually <library>/.bf/billfish.db


@dataclass
class NetworkConfig:
    """Configuration for Pixiv requests."""

    use_proxies: bool = False
    http_proxy: str = ""
    https_proxy: str = ""
    request_timeout: int = 5  # seconds
    retry_count: int = 5
    retry_backoff_ms: int = 500
    request_delay_ms: int = 100  # Delay before each request, keeps Pixiv happy
    verify_ssl: bool = False
    api_url: str = "https://www.pixiv.net/ajax/illust/"
    artwork_url: str = "https://www.pixiv.net/artworks/"
    headers: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HEADERS))

    def proxies(self) -> Optional[Dict[str, str]]:
        """Return a requests-style proxies mapping, or None if disabled."""
        if not self.use_proxies:
            return None
        proxies = {}
        if self.http_proxy:
            proxies["http"] = self.http_proxy
        if self.https_proxy:
            proxies["https"] = self.https_proxy
        return proxies or None


@dataclass
class SyncConfig:
    """Configuration for the tag and note pipelines."""

    write_tag: bool = True
    write_note: bool = True
    skip_existing: bool = True
    start_file_num: int = 0  # Offset into bf_file
    end_file_num: int = 0  # Number of files to process, 0 = all remaining
    tag_thread_count: int = 8
    note_thread_count: int = 8
    batch_size_tag: int = 20
    batch_size_tag_join: int = 50
    batch_size_note: int = 10

    def validate(self) -> None:
        """Validate sync configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        positive = {
            "tag_thread_count": self.tag_thread_count,
            "note_thread_count": self.note_thread_count,
            "batch_size_tag": self.batch_size_tag,
            "batch_size_tag_join": self.batch_size_tag_join,
            "batch_size_note": self.batch_size_note,
        }
        invalid = [name for name, value in positive.items() if value < 1]
        if invalid:
            raise ValueError(f"Values must be at least 1: {', '.join(invalid)}")
        if self.start_file_num < 0 or self.end_file_num < 0:
            raise ValueError("start_file_num and end_file_num must not be negative")


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = None  # Default: <data dir>/pixiv2billfish.log
    console_output: bool = True


@dataclass
class Config:
    """Main configuration object."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> None:
        """Validate the whole configuration.

        Raises:
            ValueError: If any section is invalid
        """
        self.sync.validate()
        if self.network.retry_count < 1:
            raise ValueError("retry_count must be at least 1")
        if self.network.request_delay_ms < 0 or self.network.retry_backoff_ms < 0:
            raise ValueError("Delays must not be negative")


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "pixiv-billfish"
    return Path.home() / ".config" / "pixiv-billfish"


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "pixiv-billfish"
    return Path.home() / ".local" / "share" / "pixiv-billfish"


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the following order:
    1. Current working directory
    2. XDG_CONFIG_HOME/pixiv-billfish (or ~/.config/pixiv-billfish)
    """
    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config
    return get_config_dir() / "config.toml"


def create_default_config() -> str:
    """Create a default configuration TOML content."""
    return """
# Pixiv2Billfish Configuration

[database]
# Billfish library database (usually <library>/.bf/billfish.db)
path = "billfish.db"

[network]
# Route Pixiv requests through a proxy
use_proxies = false
# http_proxy = "http://127.0.0.1:7890"
# https_proxy = "http://127.0.0.1:7890"

# Request timeout in seconds
request_timeout = 5

# Attempts per request before giving up, and the pause between attempts
retry_count = 5
retry_backoff_ms = 500

# Pause before every request to avoid hammering Pixiv
request_delay_ms = 100

# Verify TLS certificates
verify_ssl = false

[sync]
# Pipelines to run
write_tag = true
write_note = true

# Skip files that already have tags / notes in Billfish
skip_existing = true

# Range of files to process (end_file_num = 0 means all remaining files)
start_file_num = 0
end_file_num = 0

# Worker threads per pipeline
tag_thread_count = 8
note_thread_count = 8

# Pending rows before a batch is written
batch_size_tag = 20
batch_size_tag_join = 50
batch_size_note = 10

[logging]
# Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
level = "INFO"

# Custom log file path (default: ~/.local/share/pixiv-billfish/pixiv2billfish.log)
# log_file = "/path/to/pixiv2billfish.log"

# Also print log lines to the console
console_output = true
""".strip()


def _apply_env_overrides(config: Config, config_path: Path) -> None:
    """Apply environment variable overrides (optionally from a .env file)."""
    from dotenv import load_dotenv

    for env_path in (config_path.parent / ".env", get_config_dir() / ".env"):
        if env_path.exists():
            load_dotenv(env_path)

    db_path = os.environ.get("BILLFISH_DB_PATH")
    http_proxy = os.environ.get("PIXIV_HTTP_PROXY")
    https_proxy = os.environ.get("PIXIV_HTTPS_PROXY")

    if db_path:
        config.database.path = db_path
    if http_proxy:
        config.network.http_proxy = http_proxy
        config.network.use_proxies = True
    if https_proxy:
        config.network.https_proxy = https_proxy
        config.network.use_proxies = True


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file, falling back to defaults.

    Environment variables override TOML values:
    - BILLFISH_DB_PATH
    - PIXIV_HTTP_PROXY
    - PIXIV_HTTPS_PROXY
    """
    config_path = Path(config_path) if config_path else get_config_path()
    config = Config()

    if not config_path.exists():
        logger.warning(f"Config file {config_path} not found, using defaults")
        _apply_env_overrides(config, config_path)
        return config

    try:
        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.error(f"Error loading configuration from {config_path}: {e}")
        logger.warning("Using default configuration.")
        _apply_env_overrides(config, config_path)
        return config

    if "database" in toml_data:
        database_data = toml_data["database"]
        config.database = DatabaseConfig(
            path=str(Path(database_data.get("path", config.database.path)).expanduser()),
        )

    if "network" in toml_data:
        network_data = toml_data["network"]
        defaults = config.network
        config.network = NetworkConfig(
            use_proxies=network_data.get("use_proxies", defaults.use_proxies),
            http_proxy=network_data.get("http_proxy", defaults.http_proxy),
            https_proxy=network_data.get("https_proxy", defaults.https_proxy),
            request_timeout=network_data.get("request_timeout", defaults.request_timeout),
            retry_count=network_data.get("retry_count", defaults.retry_count),
            retry_backoff_ms=network_data.get(
                "retry_backoff_ms", defaults.retry_backoff_ms
            ),
            request_delay_ms=network_data.get(
                "request_delay_ms", defaults.request_delay_ms
            ),
            verify_ssl=network_data.get("verify_ssl", defaults.verify_ssl),
            api_url=network_data.get("api_url", defaults.api_url),
            artwork_url=network_data.get("artwork_url", defaults.artwork_url),
            headers={**defaults.headers, **network_data.get("headers", {})},
        )

    if "sync" in toml_data:
        sync_data = toml_data["sync"]
        defaults = config.sync
        config.sync = SyncConfig(
            write_tag=sync_data.get("write_tag", defaults.write_tag),
            write_note=sync_data.get("write_note", defaults.write_note),
            skip_existing=sync_data.get("skip_existing", defaults.skip_existing),
            start_file_num=sync_data.get("start_file_num", defaults.start_file_num),
            end_file_num=sync_data.get("end_file_num", defaults.end_file_num),
            tag_thread_count=sync_data.get("tag_thread_count", defaults.tag_thread_count),
            note_thread_count=sync_data.get(
                "note_thread_count", defaults.note_thread_count
            ),
            batch_size_tag=sync_data.get("batch_size_tag", defaults.batch_size_tag),
            batch_size_tag_join=sync_data.get(
                "batch_size_tag_join", defaults.batch_size_tag_join
            ),
            batch_size_note=sync_data.get("batch_size_note", defaults.batch_size_note),
        )
        try:
            config.sync.validate()
        except ValueError as e:
            logger.warning(f"Invalid sync configuration: {e}")
            logger.warning("Using default sync configuration.")
            config.sync = SyncConfig()

    if "logging" in toml_data:
        logging_data = toml_data["logging"]
        log_file = logging_data.get("log_file")
        if log_file:
            log_file = str(Path(log_file).expanduser())
        config.logging = LoggingConfig(
            level=logging_data.get("level", config.logging.level).upper(),
            log_file=log_file,
            console_output=logging_data.get(
                "console_output", config.logging.console_output
            ),
        )

    _apply_env_overrides(config, config_path)
    logger.info(f"Loaded configuration: {config_path}")
    return config


def _toml_str(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def save_config(config: Config, config_path: Optional[Path] = None) -> bool:
    """Save configuration to file."""
    config_path = Path(config_path) if config_path else get_config_path()

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        network = config.network
        sync = config.sync
        toml_content = f"""# Pixiv2Billfish Configuration

[database]
path = {_toml_str(config.database.path)}

[network]
use_proxies = {str(network.use_proxies).lower()}
http_proxy = {_toml_str(network.http_proxy)}
https_proxy = {_toml_str(network.https_proxy)}
request_timeout = {network.request_timeout}
retry_count = {network.retry_count}
retry_backoff_ms = {network.retry_backoff_ms}
request_delay_ms = {network.request_delay_ms}
verify_ssl = {str(network.verify_ssl).lower()}
api_url = {_toml_str(network.api_url)}
artwork_url = {_toml_str(network.artwork_url)}

[sync]
write_tag = {str(sync.write_tag).lower()}
write_note = {str(sync.write_note).lower()}
skip_existing = {str(sync.skip_existing).lower()}
start_file_num = {sync.start_file_num}
end_file_num = {sync.end_file_num}
tag_thread_count = {sync.tag_thread_count}
note_thread_count = {sync.note_thread_count}
batch_size_tag = {sync.batch_size_tag}
batch_size_tag_join = {sync.batch_size_tag_join}
batch_size_note = {sync.batch_size_note}

[logging]
level = {_toml_str(config.logging.level)}
console_output = {str(config.logging.console_output).lower()}"""

        if config.logging.log_file:
            toml_content += f"\nlog_file = {_toml_str(config.logging.log_file)}"

        toml_content += "\n"

        with open(config_path, "w", encoding="utf-8") as f:
            f.write(toml_content)

        logger.info(f"Saved configuration: {config_path}")
        return True

    except OSError as e:
        logger.error(f"Error saving configuration to {config_path}: {e}")
        return False


def write_default_config(config_path: Optional[Path] = None) -> Path:
    """Write the default configuration file and return its path."""
    config_path = Path(config_path) if config_path else get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        f.write(create_default_config() + "\n")
    return config_path
