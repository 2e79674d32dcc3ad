from __future__ import annotations

import argparse
import json
import logging

from .client import Client
from .config import settings
from .net import Impairment
from .policy import PathPolicy
from .retry import RetryPolicy
from .server import Server
from .session import Outcome


def _retry(args: argparse.Namespace) -> RetryPolicy:
    return RetryPolicy(timeout_s=args.timeout, max_attempts=args.retries)


def _impairment(args: argparse.Namespace) -> Impairment | None:
    if args.loss_rate or args.delay_ms:
        return Impairment(args.loss_rate, args.delay_ms)
    return None


def _report(outcome: Outcome, args: argparse.Namespace) -> int:
    payload = outcome.as_dict()
    print(json.dumps(payload, indent=2) if args.json else payload)
    return 0 if outcome.ok else 1


def cmd_serve(args: argparse.Namespace) -> int:
    server = Server.bind(
        args.host,
        args.port,
        PathPolicy(args.root, allow_overwrite=args.allow_overwrite),
        retry=_retry(args),
        impairment=_impairment(args),
    )
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logging.info("shutting down; active transfers=%d", server.active_transfers)
    finally:
        server.shutdown(timeout=args.timeout)
    return 0


def _client(args: argparse.Namespace) -> Client | None:
    try:
        return Client(args.server, args.port, retry=_retry(args), impairment=_impairment(args))
    except OSError as exc:
        logging.error("cannot resolve %s; %s", args.server, exc)
        return None


def cmd_get(args: argparse.Namespace) -> int:
    client = _client(args)
    if client is None:
        return 1
    return _report(client.get(args.remote, args.local), args)


def cmd_put(args: argparse.Namespace) -> int:
    client = _client(args)
    if client is None:
        return 1
    return _report(client.put(args.local, args.remote), args)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="rtftp", description="TFTP (RFC 1350) client and server, octet mode.")
    p.add_argument("--log-level", default=settings.log_level.upper(), choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_common(x: argparse.ArgumentParser) -> None:
        x.add_argument("--port", type=int, default=settings.port)
        x.add_argument("--timeout", type=float, default=settings.timeout_s, help="seconds to wait per block")
        x.add_argument("--retries", type=int, default=settings.max_attempts, help="attempts per block, first send included")
        x.add_argument("--loss-rate", type=float, default=0.0, help="simulate packet loss")
        x.add_argument("--delay-ms", type=int, default=0, help="simulate per-packet delay")

    serve = sub.add_parser("serve", help="serve files from a root directory")
    add_common(serve)
    serve.add_argument("--host", default=settings.host)
    serve.add_argument("--root", default=settings.root)
    serve.add_argument("--allow-overwrite", action="store_true", default=settings.allow_overwrite)
    serve.set_defaults(func=cmd_serve)

    get = sub.add_parser("get", help="download a file")
    add_common(get)
    get.add_argument("server")
    get.add_argument("remote")
    get.add_argument("local")
    get.add_argument("--json", action="store_true")
    get.set_defaults(func=cmd_get)

    put = sub.add_parser("put", help="upload a file")
    add_common(put)
    put.add_argument("server")
    put.add_argument("local")
    put.add_argument("remote")
    put.add_argument("--json", action="store_true")
    put.set_defaults(func=cmd_put)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
