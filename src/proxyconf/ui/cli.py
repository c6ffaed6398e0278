from __future__ import annotations

import argparse
import json
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING, Any

from dotenv import load_dotenv

from proxyconf.app import build_lifecycle, default_access, reload_engine
from proxyconf.config import configure_logging
from proxyconf.domain.errors import ProxyConfError
from proxyconf.domain.model import Visibility

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from types import FrameType

    from proxyconf.domain.lifecycle import StreamLifecycle

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile proxy streams into nginx config")
    parser.add_argument(
        "--user-id",
        type=int,
        default=1,
        help="Acting user id (default: %(default)s)",
    )
    parser.add_argument(
        "--visibility",
        choices=[visibility.value for visibility in Visibility],
        default=Visibility.ALL.value,
        help="Which rows the acting user may see (default: %(default)s)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    stream = subparsers.add_parser("stream", help="Stream management commands")
    stream_sub = stream.add_subparsers(dest="stream_command", required=True)

    create = stream_sub.add_parser("create", help="Create a stream")
    create.add_argument("--incoming-port", type=int, required=True)
    create.add_argument("--forwarding-host", type=str, required=True)
    create.add_argument("--forwarding-port", type=int, required=True)
    _add_protocol_flags(create, tcp_default=True, udp_default=False)
    create.add_argument(
        "--disabled",
        action="store_true",
        help="Store the stream without making it live",
    )
    _add_certificate_options(create)

    update = stream_sub.add_parser("update", help="Update a stream")
    update.add_argument("id", type=int)
    update.add_argument("--incoming-port", type=int)
    update.add_argument("--forwarding-host", type=str)
    update.add_argument("--forwarding-port", type=int)
    _add_protocol_flags(update, tcp_default=None, udp_default=None)
    _add_certificate_options(update)

    for name, help_text in (
        ("enable", "Enable a stream"),
        ("disable", "Disable a stream"),
        ("delete", "Soft-delete a stream"),
    ):
        command = stream_sub.add_parser(name, help=help_text)
        command.add_argument("id", type=int)

    show = stream_sub.add_parser("show", help="Show one stream")
    show.add_argument("id", type=int)
    show.add_argument("--expand", action="append", default=[], help="Relation to expand")
    show.add_argument(
        "--include-deleted",
        action="store_true",
        help="Also find deleted streams (audit lookup)",
    )

    list_ = stream_sub.add_parser("list", help="List streams ordered by incoming port")
    list_.add_argument("--search", type=str, help="Substring of the incoming port")
    list_.add_argument("--expand", action="append", default=[], help="Relation to expand")

    stream_sub.add_parser("count", help="Count visible streams")

    subparsers.add_parser("reconcile", help="Regenerate every stream artifact from the store")
    subparsers.add_parser("reload", help="Reload the engine with the current live directory")

    return parser.parse_args(list(argv))


def _add_protocol_flags(
    parser: argparse.ArgumentParser,
    *,
    tcp_default: bool | None,
    udp_default: bool | None,
) -> None:
    parser.add_argument(
        "--tcp",
        dest="tcp_forwarding",
        action=argparse.BooleanOptionalAction,
        default=tcp_default,
        help="Forward TCP",
    )
    parser.add_argument(
        "--udp",
        dest="udp_forwarding",
        action=argparse.BooleanOptionalAction,
        default=udp_default,
        help="Forward UDP",
    )


def _add_certificate_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--certificate",
        dest="certificate_id",
        type=str,
        help="Certificate id, 'new' to issue one, or 0 for none",
    )
    parser.add_argument(
        "--domain",
        dest="domain_names",
        action="append",
        help="Domain name for a new certificate (repeatable)",
    )
    parser.add_argument(
        "--meta",
        type=_parse_meta,
        help="JSON object merged into the stream meta",
    )


def _parse_meta(value: str) -> dict[str, Any]:
    try:
        loaded = json.loads(value)
    except json.JSONDecodeError as exc:
        raise argparse.ArgumentTypeError(f"Invalid JSON: {exc}") from exc
    if not isinstance(loaded, dict):
        raise argparse.ArgumentTypeError("Meta must be a JSON object")
    return loaded


def _request_payload(args: argparse.Namespace, names: Sequence[str]) -> dict[str, Any]:
    return {name: getattr(args, name) for name in names if getattr(args, name) is not None}


STREAM_FIELDS = (
    "incoming_port",
    "forwarding_host",
    "forwarding_port",
    "tcp_forwarding",
    "udp_forwarding",
    "certificate_id",
    "domain_names",
    "meta",
)


def _emit(payload: object) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, default=str, sort_keys=True) + "\n")


def _run_command(
    args: argparse.Namespace,
    lifecycle_factory: Callable[[], StreamLifecycle],
) -> None:
    if args.command == "reload":
        reload_engine()
        log.info("Engine reloaded")
        return

    lifecycle = lifecycle_factory()
    access = default_access(user_id=args.user_id, visibility=Visibility(args.visibility))

    if args.command == "reconcile":
        report = lifecycle.reconcile(access)
        _emit(
            {
                "committed": report.committed,
                "unchanged": report.unchanged,
                "removed": report.removed,
                "failed": report.failed,
            }
        )
        return

    match args.stream_command:
        case "create":
            payload = _request_payload(args, STREAM_FIELDS)
            payload["enabled"] = not args.disabled
            _emit(lifecycle.create(access, payload).to_dict())
        case "update":
            payload = {"id": args.id, **_request_payload(args, STREAM_FIELDS)}
            _emit(lifecycle.update(access, payload).to_dict())
        case "enable":
            lifecycle.enable(access, args.id)
            log.info("Enabled stream #%d", args.id)
        case "disable":
            lifecycle.disable(access, args.id)
            log.info("Disabled stream #%d", args.id)
        case "delete":
            lifecycle.delete(access, args.id)
            log.info("Deleted stream #%d", args.id)
        case "show":
            if args.include_deleted:
                view = lifecycle.get_for_audit(access, args.id)
            else:
                view = lifecycle.get(access, args.id, expand=args.expand)
            _emit(view.to_dict())
        case "list":
            views = lifecycle.get_all(access, expand=args.expand, search=args.search)
            _emit([view.to_dict() for view in views])
        case "count":
            _emit({"count": lifecycle.get_count(access.user_id, access.visibility)})
        case _:
            raise ValueError(f"Unsupported command: {args.stream_command}")


def main(
    argv: Sequence[str] | None = None,
    *,
    lifecycle_factory: Callable[[], StreamLifecycle] = build_lifecycle,
) -> None:
    """Main application entry point."""
    configure_logging()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        _run_command(parsed_args, lifecycle_factory)
    except ProxyConfError as exc:
        log.error("%s", exc)  # noqa: TRY400
        sys.exit(1)
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
