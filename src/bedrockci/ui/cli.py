"""Command-line interface router for bedrockci."""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
import time
import uuid
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from bedrockci.config import dump_effective_config, load_config
from bedrockci.constants import LATEST_VERSION
from bedrockci.observability import correlation_scope, setup_logging, shutdown_logging
from bedrockci.packs import InstallMode, install_test_packs
from bedrockci.server import (
    EULA_NOTICE,
    DownloadSettings,
    EulaNotAccepted,
    download_server,
    get_latest_version,
    get_server_root,
    list_servers,
    resolve_server_dir,
)
from bedrockci.ui.render import CLIRenderer, LineStyle, create_renderer, interactive_line_style
from bedrockci.validation import (
    RunOutcome,
    Severity,
    VerdictPolicy,
    evaluate,
    serve_interactive,
    validate_server,
)
from bedrockci.validation.phase import LineOutcome
from bedrockci.validation.run_loop import LineObserver, StreamName

_SEVERITY_STYLES: dict[Severity, LineStyle] = {
    Severity.ERROR: LineStyle.ERROR,
    Severity.WARNING: LineStyle.WARNING,
    Severity.INFO: LineStyle.INFO,
}


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="bedrockci",
        description=(
            "bedrockci — validate Minecraft Bedrock add-on packs against a dedicated server.\n\n"
            "Common workflows:\n"
            "  bedrockci download --accept-eula     Install the latest server\n"
            "  bedrockci validate --rp RP --bp BP   Validate packs (CI gate)\n"
            "  bedrockci run --rp RP --bp BP        Run a server with linked packs\n"
            "  bedrockci list                       Show installed server versions\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to bedrockci TOML config (default: ./bedrockci.toml if present).",
    )
    common.add_argument(
        "--profile",
        default=None,
        help="Optional config profile overlay name (built-in: strict, lenient).",
    )
    common.add_argument(
        "--server-root",
        default=None,
        help="Directory holding installed server versions (overrides BEDROCK_SERVER_PATH).",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # download ------------------------------------------------------------
    download_parser = subparsers.add_parser(
        "download",
        parents=[common],
        help="Download a dedicated server version",
        description=(
            "Download and extract a Bedrock dedicated server into the server root.\n\n"
            "Examples:\n"
            "  bedrockci download --accept-eula\n"
            "  bedrockci download --accept-eula --version 1.21.0.03\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    download_parser.add_argument(
        "--accept-eula",
        action="store_true",
        default=False,
        help="Accept the Minecraft EULA and Privacy Policy",
    )
    download_parser.add_argument(
        "--version",
        "-V",
        default=LATEST_VERSION,
        help="Server version to download (default: latest published)",
    )
    download_parser.add_argument(
        "--force-reinstall",
        action="store_true",
        default=False,
        help="Reinstall even if the version is already present",
    )
    download_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    download_parser.set_defaults(handler=_cmd_download)

    # list ----------------------------------------------------------------
    list_parser = subparsers.add_parser(
        "list", parents=[common], help="List installed server versions"
    )
    list_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    list_parser.set_defaults(handler=_cmd_list)

    # validate ------------------------------------------------------------
    validate_parser = subparsers.add_parser(
        "validate",
        parents=[common],
        help="Validate resource and behavior packs on a dedicated server",
        description=(
            "Install both packs into a server, start it, and fail when it logs errors.\n\n"
            "Examples:\n"
            "  bedrockci validate --rp ./RP --bp ./BP\n"
            "  bedrockci validate --rp ./RP --bp ./BP --fail-on-warn\n"
            "  bedrockci validate --rp ./RP --bp ./BP --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_pack_arguments(validate_parser)
    policy_group = validate_parser.add_mutually_exclusive_group()
    policy_group.add_argument(
        "--only-warn",
        action="store_true",
        default=False,
        help="Report errors without failing",
    )
    policy_group.add_argument(
        "--fail-on-warn",
        action="store_true",
        default=False,
        help="Fail on warnings as well as errors",
    )
    validate_parser.add_argument(
        "--last-log-timeout",
        "-t",
        type=float,
        default=None,
        help="Seconds of silence after startup before the server is considered idle",
    )
    validate_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    validate_parser.set_defaults(handler=_cmd_validate)

    # run -----------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Run a server with symlinked packs until interrupted",
        description=(
            "Link both packs into a server and keep it running until Ctrl+C.\n\n"
            "Examples:\n"
            "  bedrockci run --rp ./RP --bp ./BP\n"
            "  bedrockci run --rp ./RP --bp ./BP --verbose\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_pack_arguments(run_parser)
    run_parser.set_defaults(handler=_cmd_run)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config", parents=[common], help="Show the effective configuration"
    )
    config_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def _add_pack_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--rp", required=True, help="Path to the resource pack directory")
    parser.add_argument("--bp", required=True, help="Path to the behavior pack directory")
    parser.add_argument(
        "--version",
        "-V",
        default=None,
        help="Installed server version to use (default: newest installed)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=None,
        help="Show all server output",
    )


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2
    return int(handler(namespace))


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_download(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    renderer = _get_renderer(args, config)
    if not args.accept_eula:
        renderer.text(EULA_NOTICE)
        raise EulaNotAccepted()

    download = config["download"]
    settings = DownloadSettings(
        page_url=download["page_url"],
        url_template=download["url_template"],
        timeout_seconds=download["timeout_seconds"],
    )
    root = get_server_root(config["server"]["root"])
    progress = None if args.json else _ProgressPrinter(renderer)

    with _run_logging(config, command="download"):
        version, installed = asyncio.run(
            _download(
                args.version,
                root,
                settings=settings,
                force=args.force_reinstall,
                renderer=None if args.json else renderer,
                progress=progress,
            )
        )

    if args.json:
        _emit_json({"command": "download", "version": version, "path": str(installed)})
        return 0
    renderer.ok(f"Installed server {version} at {installed}")
    return 0


def _cmd_list(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    root = get_server_root(config["server"]["root"])
    versions = list_servers(root)

    if args.json:
        _emit_json({"command": "list", "root": str(root), "versions": versions})
        return 0

    renderer = _get_renderer(args, config)
    if not versions:
        renderer.text(f"No server versions installed in {root}")
        renderer.text("Download one with: bedrockci download --accept-eula")
        return 0
    renderer.heading(f"Installed server versions ({root}):")
    renderer.items([f"{name} (latest)" if name == versions[-1] else name for name in versions])
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    policy: str | None = None
    if args.only_warn or args.fail_on_warn:
        policy = VerdictPolicy.from_flags(
            only_warn=args.only_warn, fail_on_warn=args.fail_on_warn
        ).value
    config = _load_effective_config(
        args,
        {
            "server.version": args.version,
            "validation.policy": policy,
            "validation.idle_timeout_seconds": args.last_log_timeout,
            "validation.verbose": args.verbose,
        },
    )
    validation = config["validation"]
    renderer = _get_renderer(args, config)
    quiet = bool(args.json)

    with _run_logging(config, command="validate"):
        root = get_server_root(config["server"]["root"])
        server_dir = resolve_server_dir(root, config["server"]["version"])
        with correlation_scope(server_version=server_dir.name):
            if not quiet:
                renderer.heading(f"Validating packs with server version {server_dir.name}")
            install_test_packs(
                server_dir,
                bp_path=args.bp,
                rp_path=args.rp,
                mode=InstallMode(validation["install_mode"]),
            )
            observer = None if quiet else _validation_observer(renderer)
            outcome = asyncio.run(
                validate_server(
                    server_dir,
                    idle_timeout_seconds=validation["idle_timeout_seconds"],
                    executable_name=config["server"]["executable"],
                    on_line=observer,
                )
            )
            verdict = evaluate(outcome.result, VerdictPolicy(validation["policy"]))

    if quiet:
        _emit_json(
            {
                "command": "validate",
                "server_version": server_dir.name,
                "outcome": outcome.to_dict(),
                "verdict": verdict.to_dict(),
            }
        )
    else:
        renderer.kv("Stopped", outcome.stop_reason.value)
        renderer.verdict(verdict)
    verdict.raise_for_failure()
    return 0


def _cmd_run(args: argparse.Namespace) -> int:
    config = _load_effective_config(
        args, {"server.version": args.version, "validation.verbose": args.verbose}
    )
    renderer = _get_renderer(args, config)

    with _run_logging(config, command="run"):
        root = get_server_root(config["server"]["root"])
        server_dir = resolve_server_dir(root, config["server"]["version"])
        with correlation_scope(server_version=server_dir.name):
            renderer.heading(f"Using server version: {server_dir.name}")
            renderer.text("Symlinking test packs to server directory...")
            install_test_packs(
                server_dir, bp_path=args.bp, rp_path=args.rp, mode=InstallMode.SYMLINK
            )
            renderer.text("Starting server... press Ctrl+C to stop.")
            if not renderer.verbose:
                renderer.styled("Use --verbose to see all server output", LineStyle.MUTED)
            outcome = asyncio.run(
                _serve_until_interrupted(
                    server_dir,
                    executable_name=config["server"]["executable"],
                    on_line=_interactive_observer(renderer),
                )
            )

    renderer.ok(f"Server stopped ({outcome.stop_reason.value}).")
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    profile = args.profile

    if args.json:
        _emit_json({"command": "config", "active_profile": profile, "config": config})
        return 0

    renderer = _get_renderer(args, config)
    renderer.kv("Active profile", profile or "(default)")
    renderer.text(dump_effective_config(config))
    return 0


# ---------------------------------------------------------------------------
# Async workflows
# ---------------------------------------------------------------------------


async def _download(
    requested: str,
    root: Path,
    *,
    settings: DownloadSettings,
    force: bool,
    renderer: CLIRenderer | None,
    progress: _ProgressPrinter | None,
) -> tuple[str, Path]:
    version = requested
    if requested == LATEST_VERSION:
        version = await get_latest_version(settings=settings)
        if renderer is not None:
            renderer.kv("Latest version", version)
    if renderer is not None:
        renderer.text(f"Downloading Bedrock Server version {version}...")
    installed = await download_server(
        version,
        root,
        accepted_eula=True,
        force=force,
        settings=settings,
        on_progress=progress,
    )
    return version, installed


async def _serve_until_interrupted(
    server_dir: Path, *, executable_name: str, on_line: LineObserver
) -> RunOutcome:
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        installed = True
    except (NotImplementedError, RuntimeError):
        installed = False
    try:
        return await serve_interactive(
            server_dir,
            cancel_event=cancel_event,
            executable_name=executable_name,
            on_line=on_line,
        )
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def _validation_observer(renderer: CLIRenderer) -> LineObserver:
    def observe(stream: StreamName, line: str, outcome: LineOutcome) -> None:
        finding = outcome.event.finding
        if outcome.recorded and finding is not None:
            if finding.severity is not Severity.INFO or renderer.verbose:
                renderer.styled(line, _SEVERITY_STYLES[finding.severity])
        elif renderer.verbose:
            renderer.styled(line, LineStyle.MUTED)

    return observe


def _interactive_observer(renderer: CLIRenderer) -> LineObserver:
    def observe(stream: StreamName, line: str, outcome: LineOutcome) -> None:
        style = interactive_line_style(
            line, started=outcome.phase.started, verbose=renderer.verbose
        )
        if style is LineStyle.SUCCESS:
            renderer.styled("Server has started successfully! Ready for connections.", style)
        elif style is not None:
            renderer.styled(line, style)

    return observe


class _ProgressPrinter:
    """Prints download progress at every tenth of the total."""

    def __init__(self, renderer: CLIRenderer) -> None:
        self._renderer = renderer
        self._last_decile = -1

    def __call__(self, received: int, total: int | None) -> None:
        if not total:
            return
        decile = min(received * 10 // total, 10)
        if decile > self._last_decile:
            self._last_decile = decile
            self._renderer.text(f"Downloading: {decile * 10}%")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_effective_config(
    args: argparse.Namespace, overrides: Mapping[str, object] | None = None
) -> dict[str, Any]:
    cli_overrides: dict[str, object] = {"server.root": args.server_root}
    cli_overrides.update(overrides or {})
    return load_config(args.config_path, profile=args.profile, cli_overrides=cli_overrides)


@contextmanager
def _run_logging(config: Mapping[str, Any], *, command: str) -> Iterator[None]:
    handle = setup_logging(config["observability"], run_id=_new_run_id())
    try:
        with correlation_scope(command=command):
            handle.logger.info("command started", extra={"argv": sys.argv[1:]})
            yield
    finally:
        shutdown_logging(handle)


def _new_run_id() -> str:
    stamp = time.strftime("%Y%m%dT%H%M%SZ", time.gmtime())
    return f"{stamp}-{uuid.uuid4().hex[:8]}"


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace, config: Mapping[str, Any]) -> CLIRenderer:
    verbose = bool(config["validation"]["verbose"])
    return create_renderer(no_color=bool(args.no_color), verbose=verbose)


__all__ = ["build_parser", "run_cli"]
