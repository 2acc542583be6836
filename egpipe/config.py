"""Configuration module: frozen dataclass built from YAML, env vars and CLI args."""

import argparse
import logging
import os
from dataclasses import dataclass, field, fields
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import jsonschema
import yaml

from egpipe.errors import ConfigError

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
PUBLISH_SCHEMES = ("http", "https")

DEFAULT_EVENTS_PATH = "/api/events"
DEFAULT_API_VERSION = "2018-01-01"

# Settings accepted in a YAML config file.
CONFIG_SCHEMA = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "topic_host": {"type": "string"},
        "headers": {
            "type": "object",
            "additionalProperties": {"type": ["string", "number", "boolean"]},
        },
        "id": {"type": "string"},
        "subject": {"type": "string"},
        "event_type": {"type": "string"},
        "event_time": {"type": ["string", "integer"]},
        "data_version": {"type": ["string", "number"]},
        "topic": {"type": "string"},
        "queue_size": {"type": "integer", "minimum": 0},
        "flush_interval": {"type": "integer", "minimum": 0},
        "publish_scheme": {"enum": list(PUBLISH_SCHEMES)},
        "request_timeout": {"type": "number", "exclusiveMinimum": 0},
        "max_line_length": {"type": "integer", "minimum": 1},
        "log_level": {"type": "string"},
    },
}


@dataclass(frozen=True)
class PipeConfig:
    topic_host: str = ""
    headers: dict = field(default_factory=dict)
    id: str = ""
    subject: str = ""
    event_type: str = ""
    event_time: str = "now"
    data_version: str = "1.0"
    topic: str = ""
    queue_size: int = 10
    flush_interval: int = 2000  # milliseconds, 0 disables timed flushes
    publish_scheme: str = "https"
    request_timeout: float = 30.0
    max_line_length: int = 65536
    log_level: str = "INFO"

    def field_specs(self) -> dict[str, str]:
        """Map each event field name to its literal-or-query spec."""
        return {
            "id": self.id,
            "subject": self.subject,
            "eventType": self.event_type,
            "eventTime": self.event_time,
            "dataVersion": self.data_version,
        }

    def endpoint_url(self) -> str:
        """Normalize topic_host into the URL events are posted to.

        A missing scheme defaults to publish_scheme, an empty path to
        /api/events, and an api-version query parameter is always present.
        """
        return build_endpoint_url(self.topic_host, self.publish_scheme)

    @property
    def flush_interval_seconds(self) -> float:
        return self.flush_interval / 1000.0


def build_endpoint_url(topic_host: str, scheme: str = "https") -> str:
    if "://" not in topic_host:
        topic_host = f"{scheme}://{topic_host}"
    try:
        parts = urlsplit(topic_host)
        # Accessing .port validates it
        parts.port
    except ValueError as exc:
        raise ConfigError(f"invalid topic endpoint {topic_host!r}: {exc}") from exc
    if not parts.hostname:
        raise ConfigError(f"invalid topic endpoint {topic_host!r}: missing host")

    path = parts.path or DEFAULT_EVENTS_PATH
    # Repeated parameters are kept; sorting by name only preserves their order.
    query = parse_qsl(parts.query, keep_blank_values=True)
    versions = [value for name, value in query if name == "api-version"]
    if not versions or not versions[0]:
        query = [pair for pair in query if pair[0] != "api-version"]
        query.append(("api-version", DEFAULT_API_VERSION))
    query.sort(key=lambda pair: pair[0])
    return urlunsplit((parts.scheme, parts.netloc, path, urlencode(query), ""))


def parse_header(raw: str) -> tuple[str, str]:
    """Split a KEY=VALUE header flag into its name and value."""
    name, sep, value = raw.partition("=")
    name = name.strip()
    if not sep or not name:
        raise ConfigError(f"invalid header {raw!r}, expected KEY=VALUE")
    return name, value.strip()


def load_yaml_config(path: str | None) -> dict:
    """Load settings from a YAML file. Returns an empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ConfigError(f"config file {path} not found") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"config file {path} is not valid YAML: {exc}") from exc

    validator = jsonschema.Draft202012Validator(CONFIG_SCHEMA)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.path))
    if errors:
        messages = "; ".join(
            f"{'.'.join(str(p) for p in e.path) or '<root>'}: {e.message}"
            for e in errors
        )
        raise ConfigError(f"config file {path} is invalid: {messages}")

    logger.info("Loaded YAML config from %s", path)
    if "headers" in data:
        data["headers"] = {k: str(v) for k, v in data["headers"].items()}
    for key in ("event_time", "data_version"):
        if key in data:
            data[key] = str(data[key])
    return data


# (field, env var, converter)
_ENV_SETTINGS = (
    ("topic_host", "EGPIPE_TOPIC_HOST", str),
    ("id", "EGPIPE_ID", str),
    ("subject", "EGPIPE_SUBJECT", str),
    ("event_type", "EGPIPE_TYPE", str),
    ("event_time", "EGPIPE_TIMESTAMP", str),
    ("data_version", "EGPIPE_DATA_VERSION", str),
    ("topic", "EGPIPE_TOPIC", str),
    ("queue_size", "EGPIPE_QUEUE_SIZE", int),
    ("flush_interval", "EGPIPE_FLUSH_INTERVAL", int),
    ("publish_scheme", "EGPIPE_PUBLISH_SCHEME", str),
    ("request_timeout", "EGPIPE_REQUEST_TIMEOUT", float),
    ("max_line_length", "EGPIPE_MAX_LINE_LENGTH", int),
    ("log_level", "EGPIPE_LOG_LEVEL", str),
)


def _env_overrides() -> dict:
    overrides = {}
    for name, env_var, convert in _ENV_SETTINGS:
        raw = os.environ.get(env_var)
        if raw is None:
            continue
        try:
            overrides[name] = convert(raw)
        except ValueError as exc:
            raise ConfigError(f"{env_var}={raw!r} is not a valid {convert.__name__}") from exc
    return overrides


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="egpipe",
        description="Publish newline-delimited JSON from stdin to an Event Grid topic.",
    )
    parser.add_argument(
        "topic_host", nargs="?", default=None,
        help="Topic endpoint, e.g. mytopic.westus2-1.eventgrid.azure.net",
    )
    parser.add_argument(
        "-H", "--header", action="append", default=None, metavar="KEY=VALUE",
        help="Extra HTTP header (repeatable)",
    )
    parser.add_argument("-i", "--id", default=None, help="Event id, literal or jp:<query>")
    parser.add_argument("-s", "--subject", default=None, help="Event subject, literal or jp:<query>")
    parser.add_argument(
        "-t", "--type", dest="event_type", default=None,
        help="Event type, literal or jp:<query>",
    )
    parser.add_argument(
        "-T", "--timestamp", dest="event_time", default=None,
        help="'now' or epoch milliseconds, literal or jp:<query> (default: now)",
    )
    parser.add_argument("--data-version", default=None, help="Data version (default: 1.0)")
    parser.add_argument("--topic", default=None, help="Topic resource path set on every event")
    parser.add_argument(
        "--queue-size", type=int, default=None,
        help="Events per batch, 0 for timed flushes only (default: 10)",
    )
    parser.add_argument(
        "--flush-interval", type=int, default=None,
        help="Milliseconds between queue flushes, 0 to disable (default: 2000)",
    )
    parser.add_argument(
        "--publish-scheme", choices=PUBLISH_SCHEMES, default=None,
        help="Scheme used when the topic host has none (default: https)",
    )
    parser.add_argument(
        "--request-timeout", type=float, default=None,
        help="HTTP request timeout in seconds (default: 30)",
    )
    parser.add_argument(
        "--max-line-length", type=int, default=None,
        help="Longest accepted input line in bytes (default: 65536)",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")
    parser.add_argument("--config", default=None, help="Path to a YAML config file")
    return parser


def load_config(argv: list[str] | None = None) -> PipeConfig:
    """Build PipeConfig from defaults <- YAML file <- env vars <- CLI args.

    Pass argv for testability; when None, argparse reads sys.argv.
    """
    args = build_cli_parser().parse_args(argv)

    values = load_yaml_config(args.config)
    values.update(_env_overrides())

    cli_values = {
        name: getattr(args, name)
        for name in (f.name for f in fields(PipeConfig))
        if name != "headers" and getattr(args, name, None) is not None
    }
    values.update(cli_values)

    headers = dict(values.get("headers", {}))
    for raw in args.header or []:
        key, value = parse_header(raw)
        headers[key] = value
    values["headers"] = headers

    config = PipeConfig(**values)
    validate_config(config)
    return config


def validate_config(config: PipeConfig) -> None:
    """Raise ConfigError when a required value is missing or out of range."""
    if not config.topic_host:
        raise ConfigError("topic host is required")
    if not config.subject:
        raise ConfigError("subject is required (-s/--subject)")
    if not config.event_type:
        raise ConfigError("event type is required (-t/--type)")
    if config.queue_size < 0:
        raise ConfigError("queue size must not be negative")
    if config.flush_interval < 0:
        raise ConfigError("flush interval must not be negative")
    if config.request_timeout <= 0:
        raise ConfigError("request timeout must be positive")
    if config.max_line_length <= 0:
        raise ConfigError("max line length must be positive")
    if config.publish_scheme not in PUBLISH_SCHEMES:
        raise ConfigError(f"publish scheme must be one of {', '.join(PUBLISH_SCHEMES)}")
    if config.log_level.upper() not in LOG_LEVELS:
        raise ConfigError(f"log level must be one of {', '.join(LOG_LEVELS)}")
    config.endpoint_url()
