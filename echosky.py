import argparse
import logging
import sys

import utils.others as otherutils
from atp.context import ForumContext
from atp.session import is_logged_in
from definitions import DEFAULT_CONFIG_FILE
from forum.boards import BoardAggregator
from forum.codec import decode_route_token, encode_route_token
from forum.errors import ForumError, ValidationError
from forum.reactions import ReactionLedger, count_reactions
from forum.records import REACTION_KINDS
from utils.config import load_config

logger = logging.getLogger("echosky")

# Commands that work without a session / network.
OFFLINE_COMMANDS = {"token-encode", "token-decode", "logout", "whoami", "login"}


def _resolve_uri(value: str) -> str:
    """Accept either a full at:// URI or a route token."""
    return value if value.startswith("at://") else decode_route_token(value)


def cmd_login(ctx: ForumContext, args) -> int:
    atproto_cfg = ctx.config.get("atproto", {})
    identifier = args.identifier or atproto_cfg.get("handle")
    password = args.password or atproto_cfg.get("app_password")
    if not identifier or not password:
        raise ValidationError("Both an identifier and an app password are required (flags or config).")
    state = ctx.login_with_password(identifier, password, service=args.service)
    print(f"Logged in as {state.handle} ({state.did})")
    return 0


def cmd_logout(ctx: ForumContext, args) -> int:
    ctx.logout()
    print("Logged out.")
    return 0


def cmd_whoami(ctx: ForumContext, args) -> int:
    state = ctx.session
    if not is_logged_in(state):
        print("Not logged in.")
        return 1
    print(f"{state.handle} ({state.did}) on {state.pds_url}")
    return 0


def cmd_boards(ctx: ForumContext, args) -> int:
    boards = BoardAggregator(ctx)
    if args.details:
        for entry in boards.list_board_infos(include_follows=args.follows):
            info = entry.value
            print(f"{info.board_id}\t{info.name}\t{info.description or ''}")
    else:
        for board_id in boards.list_boards(include_follows=args.follows):
            print(board_id)
    return 0


def cmd_threads(ctx: ForumContext, args) -> int:
    for entry in BoardAggregator(ctx).list_threads(board=args.board, include_follows=args.follows):
        thread = entry.value
        print(f"{thread.created_at}\t{thread.board or '-'}\t{thread.title}\t{encode_route_token(entry.uri)}")
    return 0


def cmd_posts(ctx: ForumContext, args) -> int:
    thread_uri = _resolve_uri(args.thread) if args.thread else None
    for entry in BoardAggregator(ctx).list_posts(thread_uri=thread_uri, repo=args.repo):
        print(f"{entry.value.created_at}\t{entry.uri}\t{entry.value.text}")
    return 0


def cmd_create_board(ctx: ForumContext, args) -> int:
    entry = BoardAggregator(ctx).create_board(args.name, description=args.description)
    print(f"{entry.value.board_id}\t{entry.uri}")
    return 0


def cmd_create_thread(ctx: ForumContext, args) -> int:
    created = BoardAggregator(ctx).create_thread(args.title, board=args.board)
    print(f"{created.uri}\t{encode_route_token(created.uri)}")
    return 0


def cmd_create_post(ctx: ForumContext, args) -> int:
    ref_post = None
    if args.reply_uri or args.reply_cid:
        ref_post = {"uri": args.reply_uri, "cid": args.reply_cid}
    created = BoardAggregator(ctx).create_post(_resolve_uri(args.thread), args.text, ref_post=ref_post)
    print(created.uri)
    return 0


def cmd_react(ctx: ForumContext, args) -> int:
    key = ReactionLedger(ctx).toggle_reaction({"uri": _resolve_uri(args.subject), "cid": args.cid}, args.kind)
    print(key)
    return 0


def cmd_reactions(ctx: ForumContext, args) -> int:
    page = ReactionLedger(ctx).list_reactions_for_subject(
        _resolve_uri(args.subject), repo=args.repo, cursor=args.cursor, limit=args.limit
    )
    for kind, count in count_reactions(page.records).items():
        print(f"{kind}\t{count}")
    if page.cursor:
        print(f"cursor\t{page.cursor}")
    return 0


def cmd_token_encode(ctx: ForumContext, args) -> int:
    print(encode_route_token(args.uri))
    return 0


def cmd_token_decode(ctx: ForumContext, args) -> int:
    print(decode_route_token(args.token))
    return 0


def build_parser() -> argparse.ArgumentParser:
    # fmt: off
    parser = argparse.ArgumentParser(description="Boards, threads and reactions on your AT Protocol repository.")
    parser.add_argument("--config", type=str, default=None, help=f"Path to the configuration file (default: {DEFAULT_CONFIG_FILE} if present).")
    parser.add_argument("--console", action="store_true", help="Write logs to console instead of a file.")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("login", help="Log in with an app password.")
    p.add_argument("--identifier", help="Handle or email (default: atproto.handle).")
    p.add_argument("--password", help="App password (default: atproto.app_password / ECHOSKY_APP_PASSWORD).")
    p.add_argument("--service", help="PDS URL (default: atproto.service_url).")
    p.set_defaults(func=cmd_login)

    sub.add_parser("logout", help="Forget the stored session.").set_defaults(func=cmd_logout)
    sub.add_parser("whoami", help="Show the stored session.").set_defaults(func=cmd_whoami)

    p = sub.add_parser("boards", help="List board ids.")
    p.add_argument("--follows", action=argparse.BooleanOptionalAction, default=None, help="Include followed accounts (default: forum.include_follows).")
    p.add_argument("--details", action="store_true", help="Show board info records instead of bare ids.")
    p.set_defaults(func=cmd_boards)

    p = sub.add_parser("threads", help="List threads, newest first.")
    p.add_argument("--board", help="Only threads on this board id.")
    p.add_argument("--follows", action=argparse.BooleanOptionalAction, default=None, help="Include followed accounts (default: forum.include_follows).")
    p.set_defaults(func=cmd_threads)

    p = sub.add_parser("posts", help="List posts, oldest first.")
    p.add_argument("--thread", help="Thread URI or route token.")
    p.add_argument("--repo", help="Repository DID (default: your own).")
    p.set_defaults(func=cmd_posts)

    p = sub.add_parser("create-board", help="Create a board with a generated id.")
    p.add_argument("name")
    p.add_argument("--description")
    p.set_defaults(func=cmd_create_board)

    p = sub.add_parser("create-thread", help="Create a thread.")
    p.add_argument("title")
    p.add_argument("--board", help="Board id for the thread.")
    p.set_defaults(func=cmd_create_thread)

    p = sub.add_parser("create-post", help="Post into a thread.")
    p.add_argument("thread", help="Thread URI or route token.")
    p.add_argument("text")
    p.add_argument("--reply-uri", help="URI of the post being replied to.")
    p.add_argument("--reply-cid", help="CID of the post being replied to.")
    p.set_defaults(func=cmd_create_post)

    p = sub.add_parser("react", help="React to a thread or post.")
    p.add_argument("subject", help="Subject URI or route token.")
    p.add_argument("cid", help="Subject CID.")
    p.add_argument("kind", choices=REACTION_KINDS)
    p.set_defaults(func=cmd_react)

    p = sub.add_parser("reactions", help="Tally reactions on a subject (one page).")
    p.add_argument("subject", help="Subject URI or route token.")
    p.add_argument("--repo", help="Repository DID (default: your own).")
    p.add_argument("--cursor")
    p.add_argument("--limit", type=int, default=100)
    p.set_defaults(func=cmd_reactions)

    p = sub.add_parser("token-encode", help="Encode a URI as a route token.")
    p.add_argument("uri")
    p.set_defaults(func=cmd_token_encode)

    p = sub.add_parser("token-decode", help="Decode a route token back into a URI.")
    p.add_argument("token")
    p.set_defaults(func=cmd_token_decode)
    # fmt: on
    return parser


def main(argv=None) -> int:
    """
    Entry point for the boards client.

    Loads configuration and logging, restores the stored session, and runs
    the chosen subcommand. Any ForumError is reported and turns into exit
    code 1.
    """
    args = build_parser().parse_args(argv)

    config_file = args.config or (str(DEFAULT_CONFIG_FILE) if DEFAULT_CONFIG_FILE.exists() else None)
    config = load_config(config_file)

    otherutils.setup_logging(config, console=args.console, debug=args.debug)
    otherutils.log_startup_info(args, config)

    ctx = ForumContext.from_config(config)

    try:
        if args.command not in OFFLINE_COMMANDS and is_logged_in(ctx.session):
            if not ctx.resume_session():
                logger.warning("Stored session could not be resumed; run `login` again.")
        return args.func(ctx, args)
    except ForumError as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
