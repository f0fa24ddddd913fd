# pylint: disable=wrong-import-position


import argparse
import json
import logging
import sys
import threading
from pathlib import Path

import utils.others as otherutils
from core.thread_loader import LoadFailure, load_thread
from core.views import ViewType
from definitions import CONFIG_DIR, ROOT_DIR
from server import SkyviewApp, serve
from socials.bluesky_client import BlueskyClient, BlueskyConfig, BlueskyThreadSource
from socials.mention_bot import MentionBot
from utils.config import load_config

logger = logging.getLogger("skyview")


def format_outline(node, original_uri=None, depth=0):
    """Indented plain-text rendering of a thread, marking the requested post."""
    marker = "*" if node.uri == original_uri else "-"
    name = node.author.handle or node.author.display_name or node.author.did
    text = " ".join(node.record.text.split())
    lines = [f"{'  ' * depth}{marker} @{name} [{node.record.created_at}] {text}"]
    for reply in node.replies:
        lines.extend(format_outline(reply, original_uri, depth + 1))
    return lines


def resolve_config_path(path=None):
    """An explicit --config wins; otherwise config/config.yaml is used when present."""
    if path:
        return path
    default = CONFIG_DIR / "config.yaml"
    return str(default) if default.exists() else None


def build_bot(config):
    bot_cfg = config.get("bot", {}) or {}
    client = BlueskyClient(BlueskyConfig.from_config(config))
    client.login()
    return MentionBot(
        client,
        base_url=config["server"]["base_url"],
        poll_interval=float(bot_cfg.get("poll_interval", 30)),
    )


def run_serve(args, config, source):
    bot = None
    if config.get("bot", {}).get("enabled"):
        try:
            bot = build_bot(config)
        except Exception:
            logger.exception("Couldn't log in; the mention bot is disabled.")
            return 1
        threading.Thread(target=bot.run, name="mention-bot", daemon=True).start()
        logger.info("Bot is running")

    try:
        app = SkyviewApp(config, source=source)
    except FileNotFoundError as e:
        logger.error("Couldn't read index.html: %s", e)
        return 1

    server_cfg = config["server"]
    try:
        serve(app, host=args.host or server_cfg["host"], port=args.port or int(server_cfg["port"]))
    finally:
        if bot is not None:
            bot.stop()
    return 0


def run_bot(args, config, source):
    try:
        bot = build_bot(config)
    except Exception:
        logger.exception("Couldn't log in.")
        return 1
    try:
        bot.run()
    except KeyboardInterrupt:
        bot.stop()
    return 0


def run_fetch(args, config, source):
    bsky_cfg = config["bluesky"]
    result = load_thread(
        args.url,
        args.view,
        source,
        mention=bsky_cfg["mention_handle"],
        parent_height=int(bsky_cfg["parent_height"]),
        depth=int(bsky_cfg["depth"]),
    )
    if isinstance(result, LoadFailure):
        print(result.message, file=sys.stderr)
        return 1

    if args.outline:
        print("\n".join(format_outline(result.thread, result.original_uri)))
    else:
        payload = {
            "thread": result.thread.to_dict(),
            "originalUri": result.original_uri,
            "rootUri": result.root_uri,
        }
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


def build_parser():
    # fmt: off
    parser = argparse.ArgumentParser(description="View and share entire Bluesky threads.")
    parser.add_argument("--config", type=str, default=None, help="Path to the YAML configuration file (default: config/config.yaml if present, else built-in defaults).")
    parser.add_argument("--console", action="store_true", help="Write logs to console instead of a file.")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    serve_p = sub.add_parser("serve", help="Run the HTTP server (and the mention bot when enabled).")
    serve_p.add_argument("--host", type=str, default=None, help="Host to bind (default: server.host).")
    serve_p.add_argument("--port", type=int, default=None, help="Port to bind (default: server.port / $PORT).")
    serve_p.set_defaults(func=run_serve)

    bot_p = sub.add_parser("bot", help="Run only the mention bot.")
    bot_p.set_defaults(func=run_bot)

    fetch_p = sub.add_parser("fetch", help="Load one thread and print it.")
    fetch_p.add_argument("url", help="Bluesky post URL (https://bsky.app/profile/<actor>/post/<rkey>) or at:// URI.")
    fetch_p.add_argument("--view", choices=[v.value for v in ViewType], default=ViewType.TREE.value, help="View type (default: tree).")
    fetch_p.add_argument("--outline", action="store_true", help="Print an indented text outline instead of JSON.")
    fetch_p.set_defaults(func=run_fetch)
    # fmt: on
    return parser


def main(argv=None):
    """
    Entry point: parse arguments, load configuration, set up logging and
    dispatch to the chosen subcommand.
    """
    args = build_parser().parse_args(argv)

    config = load_config(resolve_config_path(args.config))
    static_dir = Path(config["server"]["static_dir"])
    if not static_dir.is_absolute():
        config["server"]["static_dir"] = str(ROOT_DIR / static_dir)

    # fetch prints its result on stdout, so keep its logs on the console too
    otherutils.setup_logging(config, console=args.console or args.command == "fetch", debug=args.debug)
    otherutils.log_startup_info(args, config)

    source = BlueskyThreadSource(BlueskyConfig.from_config(config))
    return args.func(args, config, source)


if __name__ == "__main__":
    sys.exit(main())
