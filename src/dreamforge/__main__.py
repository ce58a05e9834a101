"""CLI entry point for dreamforge."""

from __future__ import annotations

import argparse
import json
import sys

from dreamforge.config import load_config
from dreamforge.core.classifier import IntentClassifier
from dreamforge.log import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="dreamforge",
        description="Prompt-routed vision inference service with usage analytics",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument(
        "-c", "--config", default="config.yaml", help="Path to config file"
    )
    serve_parser.add_argument(
        "-e", "--env", default=".env", help="Path to .env file"
    )

    # config-check command
    check_parser = subparsers.add_parser("config-check", help="Validate configuration")
    check_parser.add_argument(
        "-c", "--config", default="config.yaml", help="Path to config file"
    )
    check_parser.add_argument(
        "-e", "--env", default=".env", help="Path to .env file"
    )

    # classify command
    classify_parser = subparsers.add_parser(
        "classify", help="Show the rule-based routing decision for a prompt"
    )
    classify_parser.add_argument("prompt", help="Prompt text to classify")

    args = parser.parse_args()

    if args.command is None:
        args.command = "serve"
        args.config = "config.yaml"
        args.env = ".env"

    if args.command == "config-check":
        _check_config(args.config, args.env)
    elif args.command == "classify":
        _classify(args.prompt)
    elif args.command == "serve":
        _serve(args.config, args.env)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    try:
        config = load_config(config_path, env_path)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Configuration valid: {config_path}")
    print(f"  Environment : {config.environment}")
    print(f"  LLM assist  : {'anthropic/' + config.anthropic.model if config.llm_configured else '(disabled)'}")
    print(f"  Vision      : {config.vision.base_url}{'' if config.vision.api_key else ' (demo mode)'}")
    print(f"  Storage     : {config.storage.db_path if config.storage.enabled else '(memory only)'}")
    print(f"  Server      : {config.server.host}:{config.server.port}")


def _classify(prompt: str) -> None:
    setup_logging("WARNING")
    route = IntentClassifier().classify(prompt)
    print(json.dumps({"skill": route.skill.value, "params": route.params_dict()}, indent=2))


def _serve(config_path: str, env_path: str) -> None:
    """Load config and start the HTTP server."""
    try:
        config = load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Copy config.example.yaml to config.yaml first")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.log_level, config.log_format)

    import uvicorn

    from dreamforge.api.server import create_app
    from dreamforge.app import DreamForgeApp

    app = create_app(DreamForgeApp(config))
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
