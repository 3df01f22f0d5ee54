"""CLI entrypoints for the hitcounter server, offline rendering, and diagnostics."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path

from hitcounter_core import (
    AppConfig,
    build_doctor_payload,
    build_registry_from_config,
    build_renderer,
    build_runtime,
    build_store,
    config_path,
    load_config,
    save_config,
)
from hitcounter_core.logging_setup import configure_logging, install_crash_hooks
from hitcounter_counter import StorageError
from hitcounter_renderer import RenderRequest


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, sort_keys=True, default=str))


def _non_negative_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}") from None
    if value < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0: {value}")
    return value


def _load(args: argparse.Namespace) -> AppConfig:
    return load_config(Path(args.config).expanduser() if args.config else None)


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from .server import create_app

    cfg = _load(args)
    configure_logging(keep_files=cfg.logging.keep_files, console=cfg.logging.console, level=cfg.logging.level)
    install_crash_hooks()

    host = args.host or cfg.server.host
    port = args.port or cfg.server.port
    uvicorn.run(create_app(config=cfg), host=host, port=port, log_config=None)
    return 0


def cmd_render(args: argparse.Namespace) -> int:
    cfg = _load(args)
    registry = build_registry_from_config(cfg)
    renderer = build_renderer(cfg, registry)
    length = cfg.render.digit_count if args.length is None else args.length
    try:
        image = renderer.render(RenderRequest(count=args.count, min_length=length, theme=args.theme, format=args.format))
    except ValueError as exc:
        _print_json({"success": False, "error": str(exc)})
        return 2

    if args.out is None:
        sys.stdout.buffer.write(image.body)
        sys.stdout.buffer.flush()
        return 0

    out = Path(args.out).expanduser()
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(image.body)
    payload = asdict(image)
    payload.pop("body")
    payload["path"] = str(out)
    payload["bytes"] = len(image.body)
    _print_json(payload)
    return 0


def cmd_themes(args: argparse.Namespace) -> int:
    cfg = _load(args)
    registry = build_registry_from_config(cfg)
    themes = []
    for name in registry.names():
        theme = registry.resolve(name).theme
        themes.append(
            {
                "name": theme.name,
                "source": theme.source,
                "glyph_width": theme.layout.width,
                "glyph_height": theme.layout.height,
            }
        )
    _print_json({"default": registry.default.name, "themes": themes})
    return 0


def cmd_peek(args: argparse.Namespace) -> int:
    cfg = _load(args)
    store = build_store(cfg)
    try:
        value = store.load(args.key)
    finally:
        store.close()
    _print_json({"key": args.key, "count": value or 0, "exists": value is not None})
    return 0


def cmd_dump(args: argparse.Namespace) -> int:
    cfg = _load(args)
    store = build_store(cfg)
    try:
        records = store.records()
    finally:
        store.close()
    _print_json([asdict(r) for r in records])
    return 0


def cmd_doctor(args: argparse.Namespace) -> int:
    cfg = _load(args)
    try:
        runtime = build_runtime(cfg)
    except StorageError as exc:
        payload = build_doctor_payload(cfg)
        payload["store"] = {"backend": cfg.store.backend, "error": str(exc)}
        _print_json(payload)
        return 2

    try:
        _print_json(build_doctor_payload(cfg, runtime))
    finally:
        runtime.close()
    return 0


def cmd_init_config(args: argparse.Namespace) -> int:
    path = Path(args.path).expanduser() if args.path else (Path(args.config) if args.config else config_path())
    if path.exists() and not args.force:
        _print_json({"success": False, "path": str(path), "error": "exists"})
        return 1
    save_config(AppConfig(), path)
    _print_json({"success": True, "path": str(path)})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hitcounter", description="Visit counter badge service and tools")
    parser.add_argument("--config", default=None, help="Path to config JSON (default: platform config dir)")
    sub = parser.add_subparsers(dest="command", required=True)

    serve_cmd = sub.add_parser("serve", help="Run the HTTP badge server")
    serve_cmd.add_argument("--host", default=None)
    serve_cmd.add_argument("--port", type=int, default=None)
    serve_cmd.set_defaults(func=cmd_serve)

    render_cmd = sub.add_parser("render", help="Render a badge for a count without touching the store")
    render_cmd.add_argument("--count", type=_non_negative_int, required=True)
    render_cmd.add_argument("--theme", default=None)
    render_cmd.add_argument("--format", default=None, help="svg or webp")
    render_cmd.add_argument("--length", type=_non_negative_int, default=None, help="Minimum digits (zero padded)")
    render_cmd.add_argument("--out", default=None, help="Output file (default: stdout)")
    render_cmd.set_defaults(func=cmd_render)

    themes_cmd = sub.add_parser("themes", help="List available themes")
    themes_cmd.set_defaults(func=cmd_themes)

    peek_cmd = sub.add_parser("peek", help="Read one persisted count")
    peek_cmd.add_argument("key")
    peek_cmd.set_defaults(func=cmd_peek)

    dump_cmd = sub.add_parser("dump", help="Print every persisted count")
    dump_cmd.set_defaults(func=cmd_dump)

    doctor_cmd = sub.add_parser("doctor", help="Print diagnostics")
    doctor_cmd.set_defaults(func=cmd_doctor)

    init_cmd = sub.add_parser("init-config", help="Write the default config file")
    init_cmd.add_argument("--path", default=None)
    init_cmd.add_argument("--force", action="store_true")
    init_cmd.set_defaults(func=cmd_init_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command != "serve":
        configure_logging(console=False)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
