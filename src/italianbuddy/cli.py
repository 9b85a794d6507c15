"""Command-line interface for ItalianBuddy."""

import argparse
import json
import logging
import sys
from typing import Any, List, Optional

from .config import AgentConfig
from .errors import BuddyError, ValidationError
from .service import BuddyService, provider_status


def _print(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _load_history(path: Optional[str]) -> List[Any]:
    if not path:
        return []
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise ValidationError(f"Could not read history file: {e}", field="history") from e


def _parse_bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in ("true", "yes", "y", "1"):
        return True
    if lowered in ("false", "no", "n", "0"):
        return False
    raise argparse.ArgumentTypeError(f"Expected true or false, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="ItalianBuddy: conversation practice and vocabulary review"
    )
    parser.add_argument("--db", help="DuckDB file (defaults to ITALIANBUDDY_DB or memory)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    chat_parser = subparsers.add_parser("chat", help="Send a chat message")
    chat_parser.add_argument("message", help="Message in the target language")
    chat_parser.add_argument("--user", default="demo-user", help="User id")
    chat_parser.add_argument("--history", help="JSON file with prior turns")

    history_parser = subparsers.add_parser("history", help="Show chat history")
    history_parser.add_argument("--user", default="demo-user", help="User id")
    history_parser.add_argument("--limit", type=int, default=20)

    subparsers.add_parser("scenarios", help="List role-play scenarios")

    scenario_parser = subparsers.add_parser("scenario", help="Talk inside a scenario")
    scenario_parser.add_argument("scenario_id", help="Scenario id")
    scenario_parser.add_argument("message", help="Message in the target language")
    scenario_parser.add_argument("--history", help="JSON file with prior turns")

    due_parser = subparsers.add_parser("due", help="List words due for review")
    due_parser.add_argument("--user", default="demo-user", help="User id")

    review_parser = subparsers.add_parser("review", help="Record a review answer")
    review_parser.add_argument("word_id", help="Vocabulary item id")
    review_parser.add_argument("correct", type=_parse_bool, help="true or false")

    seed_parser = subparsers.add_parser("seed", help="Add starter vocabulary")
    seed_parser.add_argument("--user", default="demo-user", help="User id")
    seed_parser.add_argument("--count", type=int, default=20)

    example_parser = subparsers.add_parser("example", help="Generate an example sentence")
    example_parser.add_argument("word", help="Word to illustrate")

    prompt_parser = subparsers.add_parser("prompt", help="Daily writing prompt")
    prompt_parser.add_argument("action", choices=["generate", "evaluate"])
    prompt_parser.add_argument("--text", help="Response to evaluate")

    subparsers.add_parser("providers", help="Show which AI provider would be used")

    return parser


def run(args: argparse.Namespace, config: AgentConfig) -> Any:
    """Dispatches a parsed command and returns its JSON-ready result."""
    if args.command == "providers":
        return provider_status(config)

    service = BuddyService(config)
    try:
        if args.command == "chat":
            return service.chat(args.message, args.user, _load_history(args.history))
        if args.command == "history":
            return service.chat_history(args.user, args.limit)
        if args.command == "scenarios":
            return service.list_scenarios()
        if args.command == "scenario":
            return service.scenario_message(
                args.scenario_id, args.message, _load_history(args.history)
            )
        if args.command == "due":
            return service.vocabulary_due(args.user)
        if args.command == "review":
            return service.review_vocabulary(args.word_id, args.correct)
        if args.command == "seed":
            return service.seed_vocabulary(args.user, args.count)
        if args.command == "example":
            return service.generate_example(args.word)
        if args.command == "prompt":
            return service.daily_prompt(args.action, args.text)
        raise ValidationError(f"Unknown command: {args.command}", field="command")
    finally:
        service.db.close()


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = AgentConfig.from_env()
        if args.db:
            config = config.model_copy(update={"database_path": args.db})
        _print(run(args, config))
    except BuddyError as e:
        logging.getLogger(__name__).error("%s: %s", type(e).__name__, e.message)
        _print(e.to_dict())
        sys.exit(1)


if __name__ == "__main__":
    main()
