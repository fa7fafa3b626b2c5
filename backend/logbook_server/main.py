"""
Logbook Server - Main entry point.

Commands:
    logbook server [--config PATH] [--host HOST] [--port PORT]
    logbook validate-schema FILE

Configuration comes from environment variables (see config.py), optionally
overridden by a key=value config file and then by command-line flags.

Invariants:
    - Configuration errors exit with status 1 before anything starts
    - validate-schema exits non-zero on the first violated rule

How to change safely:
    - Add new subcommands, don't change the meaning of existing flags
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace

import json_log_formatter
import uvicorn

from .api import create_app
from .config import ServerConfig
from .errors import ValidationError
from .schema import FieldDef, validate_schema

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def load_config(args: argparse.Namespace) -> ServerConfig:
    """Build the server configuration: env, then config file, then flags.

    Raises:
        ValueError: If configuration is invalid
        OSError: If the config file cannot be read
    """
    config = ServerConfig.from_env()
    if args.config:
        config = ServerConfig.from_file(args.config, base=config)

    if args.host is not None or args.port is not None:
        config.http = replace(
            config.http,
            host=args.host if args.host is not None else config.http.host,
            port=args.port if args.port is not None else config.http.port,
        )
        config.validate()
    return config


def run_server(config: ServerConfig) -> None:
    """Serve the HTTP API until interrupted."""
    setup_logging(config)
    config.log_config()

    app = create_app(config)
    uvicorn.run(app, host=config.http.host, port=config.http.port, log_config=None)


def validate_schema_file(path: str) -> list[str]:
    """Validate a JSON field list from a file.

    The file holds either a list of field definitions or an object with a
    "fields" list.

    Returns:
        Empty list if valid, otherwise the first violation
    """
    with open(path) as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("fields", [])
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        return ["expected a list of field definitions"]

    try:
        validate_schema([FieldDef.from_dict(item) for item in data])
    except ValidationError as e:
        return [e.message]
    return []


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Logbook server")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # server command
    server_parser = subparsers.add_parser("server", help="Run the HTTP server")
    server_parser.add_argument("--config", "-c", help="Path to key=value config file")
    server_parser.add_argument("--host", help="Address to bind")
    server_parser.add_argument("--port", type=int, help="Port to listen on")

    # validate-schema command
    validate_parser = subparsers.add_parser(
        "validate-schema", help="Validate a JSON field schema file"
    )
    validate_parser.add_argument("file", help="Schema JSON file to validate")

    args = parser.parse_args()

    if args.command == "server":
        try:
            config = load_config(args)
        except (ValueError, OSError) as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            sys.exit(1)

        run_server(config)

    elif args.command == "validate-schema":
        try:
            errors = validate_schema_file(args.file)
        except (OSError, json.JSONDecodeError) as e:
            print(f"Cannot read schema file: {e}", file=sys.stderr)
            sys.exit(2)

        if not errors:
            print("Schema is valid")
            sys.exit(0)
        else:
            print("Schema validation failed:")
            for error in errors:
                print(f"  - {error}")
            sys.exit(1)


if __name__ == "__main__":
    main()
