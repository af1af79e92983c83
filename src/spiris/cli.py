"""Command-line front-end for the Spiris API client.

Usage:
    spiris login                          # authorize in the browser, store the token
    spiris token                          # show token expiry
    spiris refresh                        # renew the stored token
    spiris customers list --pagesize 50
    spiris invoices get <id>
    spiris articles delete <id>

Credentials come from SPIRIS_CLIENT_ID / SPIRIS_CLIENT_SECRET / SPIRIS_REDIRECT_URI
(environment or --env-file). The token is kept in .spiris_token.json.
"""

import argparse
import json
import logging
import os
import sys
import time
from pathlib import Path

from .auth import OAuth2Handler, parse_callback, verify_state
from .client import Client
from .env import load_client_config_from_env, load_oauth_config_from_env
from .errors import (
    AuthError,
    AuthExpiredError,
    ConfigurationError,
    ExhaustedError,
    SpirisError,
)
from .models import PaginationParams, QueryParams
from .tokens import AccessToken

TOKEN_FILE = ".spiris_token.json"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_REAUTH = 2
EXIT_EXHAUSTED = 3

RESOURCES = ("customers", "invoices", "articles")

# ---------- token persistence ----------


def load_token(path: Path) -> AccessToken | None:
    if not path.exists():
        return None
    try:
        return AccessToken.from_json(path.read_text())
    except (ValueError, KeyError, TypeError) as e:
        raise ConfigurationError(f"unreadable token file {path}: {e}") from e


def save_token(path: Path, token: AccessToken) -> None:
    # owner read/write only; the file holds live credentials
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as f:
        f.write(token.to_json())
    os.chmod(path, 0o600)


# ---------- factories (patched in tests) ----------


def make_handler(args) -> OAuth2Handler:
    return OAuth2Handler(load_oauth_config_from_env(env_path=args.env_file))


def make_client(args, token: AccessToken) -> Client:
    try:
        handler = make_handler(args)
    except ConfigurationError:
        handler = None
    config = load_client_config_from_env(env_path=args.env_file)
    tracing = True if getattr(args, "verbose", False) else None
    return Client(token, config, oauth=handler, tracing_enabled=tracing)


def _require_token(args) -> AccessToken:
    token = load_token(Path(args.token_file))
    if token is None:
        raise AuthExpiredError(f"no token at {args.token_file}; run 'spiris login' first")
    return token


# ---------- commands ----------


def cmd_login(args) -> int:
    handler = make_handler(args)
    flow = handler.authorize_url()
    print("Open this URL in your browser and authorize access:\n")
    print(flow.url)
    redirected = input("\nPaste the URL you were redirected to: ")
    code, state = parse_callback(redirected)
    verify_state(flow.state, state)
    token = handler.exchange_code(code, flow.verifier)
    save_token(Path(args.token_file), token)
    print(f"Logged in; token stored in {args.token_file}")
    return EXIT_OK


def cmd_token(args) -> int:
    token = _require_token(args)
    left = token.seconds_left()
    state = "expired" if token.is_expired() else f"valid for {int(left)}s"
    expires = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(token.expires_at))
    refreshable = "present" if token.can_refresh else "absent"
    print(f"{state} (expires {expires}); refresh token {refreshable}")
    return EXIT_OK


def cmd_refresh(args) -> int:
    client = make_client(args, _require_token(args))
    with client:
        token = client.refresh()
    save_token(Path(args.token_file), token)
    print(f"Token refreshed; valid for {int(token.seconds_left())}s")
    return EXIT_OK


def _summary(item) -> str:
    label = getattr(item, "name", None) or getattr(item, "invoice_number", None) or ""
    return f"{item.id}\t{label}"


def cmd_resource(args) -> int:
    token = _require_token(args)
    client = make_client(args, token)
    with client:
        endpoint = getattr(client, args.resource)()
        if args.action == "list":
            page = endpoint.list(
                PaginationParams(page=args.page, pagesize=args.pagesize),
                QueryParams(filter=args.filter) if args.filter else None,
            )
            for item in page:
                print(_summary(item))
            meta = page.meta
            print(f"-- page {meta.current_page}/{meta.total_number_of_pages}, {len(page)} shown")
        elif args.action == "get":
            item = endpoint.get(args.id)
            print(json.dumps(item.to_api(), indent=2, default=str))
        else:
            endpoint.delete(args.id)
            print(f"Deleted {args.resource[:-1]} {args.id}")
        if client.token is not token:
            save_token(Path(args.token_file), client.token)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="spiris", description="Spiris accounting API client")
    parser.add_argument("--token-file", default=TOKEN_FILE, help="where the token is stored")
    parser.add_argument("--env-file", default=None, help="optional .env file with credentials")
    parser.add_argument("-v", "--verbose", action="store_true", help="log requests and retries")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("login", help="run the OAuth2 authorization flow").set_defaults(func=cmd_login)
    sub.add_parser("token", help="show stored token status").set_defaults(func=cmd_token)
    sub.add_parser("refresh", help="refresh the stored token").set_defaults(func=cmd_refresh)

    for resource in RESOURCES:
        res = sub.add_parser(resource, help=f"work with {resource}")
        actions = res.add_subparsers(dest="action", required=True)
        lst = actions.add_parser("list", help=f"list {resource}")
        lst.add_argument("--page", type=int, default=None)
        lst.add_argument("--pagesize", type=int, default=50)
        lst.add_argument("--filter", default=None, help="OData $filter expression")
        for action in ("get", "delete"):
            cmd = actions.add_parser(action, help=f"{action} one item")
            cmd.add_argument("id")
        res.set_defaults(func=cmd_resource, resource=resource)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except ExhaustedError as e:
        print(f"error: service unavailable, gave up after retries: {e}", file=sys.stderr)
        return EXIT_EXHAUSTED
    except (AuthError, AuthExpiredError) as e:
        print(f"error: re-authentication required: {e}", file=sys.stderr)
        return EXIT_REAUTH
    except SpirisError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
