from __future__ import annotations

import argparse
import copy
import importlib
import logging
import sys
from collections.abc import Mapping
from typing import Any, Sequence, Tuple

from .config import DashboardOptions, ServeConfig, normalize_base_path

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_LOG_DATEFMT = "%H:%M:%S"
_POLL_PATH_SUFFIXES = ("/api/queues", "/api/health")


def _stderr(line: str) -> None:
    print(str(line), file=sys.stderr)


def _configure_console_logging(level: int = logging.INFO) -> None:
    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT)
    root = logging.getLogger()
    if root.handlers:
        for h in list(root.handlers):
            h.setFormatter(formatter)
        root.setLevel(int(level))
        return
    logging.basicConfig(level=int(level), format=_LOG_FORMAT, datefmt=_LOG_DATEFMT)


def _build_uvicorn_log_config(*, uvicorn, silence_poll_access_log: bool) -> dict:
    """Return a uvicorn log_config dict using the same line format as the console logger."""
    base = getattr(getattr(uvicorn, "config", None), "LOGGING_CONFIG", None)
    if not isinstance(base, dict):
        return {}
    log_config = copy.deepcopy(base)

    default_fmt = _LOG_FORMAT
    access_fmt = '%(asctime)s [%(levelname)s] %(name)s: %(client_addr)s - "%(request_line)s" %(status_code)s'

    fmts = log_config.setdefault("formatters", {})
    # Keep uvicorn's own formatter classes: the access formatter is what provides
    # `client_addr` / `request_line` / `status_code`.
    for key, fmt in (("default", default_fmt), ("access", access_fmt)):
        entry = fmts.setdefault(key, {})
        if isinstance(entry, dict):
            entry["fmt"] = fmt
            entry["datefmt"] = _LOG_DATEFMT

    if silence_poll_access_log:
        log_config.setdefault("filters", {})["suppress_dashboard_polling"] = {
            "()": "queuedash.cli._UvicornAccessLogFilter"
        }
        log_config.setdefault("handlers", {}).setdefault("access", {})["filters"] = ["suppress_dashboard_polling"]

    return log_config


class _UvicornAccessLogFilter(logging.Filter):
    """Drop successful dashboard polling requests from the access log; keep everything else."""

    def filter(self, record: logging.LogRecord) -> bool:
        args = record.args
        # Uvicorn access logs pass args as:
        #   (client_addr, method, full_path, http_version, status_code)
        if not (isinstance(args, tuple) and len(args) >= 5):
            return True
        method = str(args[1] or "").upper()
        path = str(args[2] or "").split("?", 1)[0].rstrip("/")
        if method != "GET" or not path.endswith(_POLL_PATH_SUFFIXES):
            return True
        try:
            return int(args[4]) != 200
        except (TypeError, ValueError):
            return True


def load_target(target: str) -> Tuple[list, list]:
    """Import `module:attr` and return `(queues, queue_events)`.

    The attribute may be a callable (called without arguments) or a value; either way it must
    produce a list of queue handles, a `(queues, queue_events)` pair, or a mapping with
    `queues` / `queue_events` keys.
    """
    module_name, sep, attr = str(target or "").partition(":")
    if not sep or not module_name or not attr:
        raise SystemExit(f"Invalid --target '{target}' (expected 'package.module:factory')")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise SystemExit(f"Cannot import target module '{module_name}': {e}")

    obj: Any = module
    for part in attr.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError:
            raise SystemExit(f"Target '{target}' not found")
    value = obj() if callable(obj) else obj

    if isinstance(value, Mapping):
        return list(value.get("queues") or []), list(value.get("queue_events") or [])
    if isinstance(value, tuple) and len(value) == 2 and all(isinstance(v, (list, tuple)) for v in value):
        return list(value[0]), list(value[1])
    return list(value), []


def build_server_app(
    *,
    queues: Sequence[Any],
    queue_events: Sequence[Any],
    cfg: ServeConfig,
):
    from fastapi import FastAPI

    from . import __version__
    from .app import create_dashboard
    from .security import BearerTokenPolicy

    authorize = BearerTokenPolicy(tokens=tuple(cfg.auth_tokens)) if cfg.auth_tokens else None
    options = DashboardOptions(
        read_only=bool(cfg.read_only),
        authorize=authorize,
        queue_events=tuple(queue_events),
        base_path=cfg.base_path,
        heartbeat_interval_s=float(cfg.heartbeat_interval_s),
    )
    server = FastAPI(title="queuedash server", version=__version__)
    server.mount(cfg.base_path or "/", create_dashboard(queues, options))
    return server


def main(argv: list[str] | None = None) -> None:
    _configure_console_logging()
    parser = argparse.ArgumentParser(prog="queuedash", description="queuedash (job queue dashboard gateway)")
    sub = parser.add_subparsers(dest="cmd", required=True)

    serve = sub.add_parser("serve", help="Run the dashboard HTTP/SSE server")
    serve.add_argument("--target", required=True, help="Queue factory as 'package.module:factory'")
    serve.add_argument("--host", default=None, help="Bind host (default: QUEUEDASH_HOST or 127.0.0.1)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default: QUEUEDASH_PORT or 3000)")
    serve.add_argument("--base-path", default=None, help="Mount path (default: QUEUEDASH_BASE_PATH or /dashboard)")
    serve.add_argument("--read-only", action="store_true", help="Reject every mutation with 403")

    args = parser.parse_args(argv)

    if args.cmd == "serve":
        env_cfg = ServeConfig.from_env()
        cfg = ServeConfig(
            host=str(args.host or env_cfg.host),
            port=int(args.port if args.port is not None else env_cfg.port),
            base_path=normalize_base_path(args.base_path) if args.base_path is not None else env_cfg.base_path,
            read_only=bool(args.read_only or env_cfg.read_only),
            heartbeat_interval_s=env_cfg.heartbeat_interval_s,
            auth_tokens=env_cfg.auth_tokens,
            silence_poll_access_log=env_cfg.silence_poll_access_log,
        )

        if not cfg.read_only and not cfg.auth_tokens and cfg.host not in {"127.0.0.1", "::1", "localhost"}:
            _stderr(
                "[WARN] Dashboard mutations are enabled without an auth token on a non-loopback host. "
                "Set QUEUEDASH_AUTH_TOKEN or use --read-only."
            )

        try:
            import uvicorn
        except ImportError as e:
            raise SystemExit(
                "queuedash HTTP server dependencies are missing.\n"
                "Install with: `pip install \"queuedash[server]\"`\n"
                f"(import failed: {e})"
            )

        queues, queue_events = load_target(args.target)
        app = build_server_app(queues=queues, queue_events=queue_events, cfg=cfg)

        run_kwargs: dict[str, object] = {"host": cfg.host, "port": cfg.port}
        log_config = _build_uvicorn_log_config(uvicorn=uvicorn, silence_poll_access_log=cfg.silence_poll_access_log)
        if log_config:
            run_kwargs["log_config"] = log_config

        logging.getLogger(__name__).info(
            "queuedash_serve host=%s port=%s base_path=%s queues=%s", cfg.host, cfg.port, cfg.base_path or "/", len(queues)
        )
        uvicorn.run(app, **run_kwargs)
        return

    raise SystemExit(2)


if __name__ == "__main__":
    main()
