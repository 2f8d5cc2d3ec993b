import configparser
import logging
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError

DEFAULT_API_URL = "https://slack.com/api"

REQUIRED_KEYS = (
    "bot_name",
    "folder",
    "limit_uploads_per_minute",
    "slack_channel",
    "slack_token",
)


@dataclass(frozen=True)
class ChannelConfig:
    name: str
    bot_name: str
    folder: Path
    limit_uploads_per_minute: int
    slack_channel: str
    slack_token: str
    bot_icon: str | None = None
    max_upload_bytes: int | None = None
    api_url: str = DEFAULT_API_URL


def normalize_api_url(url: str) -> str:
    url = url.strip()
    if not url:
        return ""
    if not url.startswith(("https://", "http://")):
        url = f"https://{url}"
    return url.rstrip("/")


def _positive_int(section: str, key: str, value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise ConfigurationError(
            f"[{section}] invalid {key}: {value!r} (expected a positive integer)"
        ) from None
    if number < 1:
        raise ConfigurationError(
            f"[{section}] invalid {key}: {value!r} (expected a positive integer)"
        )
    return number


def _parse_section(config: configparser.ConfigParser, section: str) -> ChannelConfig:
    values = config[section]
    for key in REQUIRED_KEYS:
        if not values.get(key, "").strip():
            raise ConfigurationError(f"[{section}] missing {key}")

    max_upload_bytes = values.get("max_upload_bytes", "").strip()
    api_url = normalize_api_url(values.get("api_url", "")) or DEFAULT_API_URL

    return ChannelConfig(
        name=section,
        bot_name=values["bot_name"].strip(),
        folder=Path(values["folder"].strip()).expanduser(),
        limit_uploads_per_minute=_positive_int(
            section, "limit_uploads_per_minute", values["limit_uploads_per_minute"]
        ),
        slack_channel=values["slack_channel"].strip(),
        slack_token=values["slack_token"].strip(),
        bot_icon=values.get("bot_icon", "").strip() or None,
        max_upload_bytes=(
            _positive_int(section, "max_upload_bytes", max_upload_bytes)
            if max_upload_bytes
            else None
        ),
        api_url=api_url,
    )


def load_config(config_path: Path) -> list[ChannelConfig]:
    """Read one ChannelConfig per INI section.

    Keys under ``[DEFAULT]`` are shared by every section. Any missing or
    invalid key raises ConfigurationError; nothing is started on a partially
    valid file.
    """
    if not config_path.is_file():
        raise ConfigurationError(f"Config file not found: {config_path}")

    # Interpolation would mangle tokens and texts containing '%'.
    config = configparser.ConfigParser(interpolation=None)
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            config.read_file(handle)
    except (OSError, configparser.Error) as exc:
        raise ConfigurationError(f"Cannot read config file {config_path}: {exc}") from exc

    if not config.sections():
        raise ConfigurationError(f"No channel sections in {config_path}")

    channels: list[ChannelConfig] = []
    for section in config.sections():
        channel = _parse_section(config, section)
        logging.info(
            "Found bot %r, watching folder %s -> %s",
            channel.bot_name,
            channel.folder,
            channel.slack_channel,
        )
        channels.append(channel)

    logging.info("Loaded %d channel(s) from %s", len(channels), config_path)
    return channels
