"""bridgectl: CLI entry point for the web view bridge driver.

Every command is forwarded to a per-session daemon that keeps the bridge
connection and the script registry alive between invocations.  The
daemon is started on first use.

Typical workflow:
    bridgectl session start
    bridgectl windows
    bridgectl exec "document.title"
    bridgectl script add banner "console.log('hi')"
    bridgectl shutdown
"""

from __future__ import annotations

import sys
from typing import Any, Dict, Optional

import click

from bridgedriver.cli.formatter import (
    format_scripts_list,
    format_windows_list,
    output,
    output_error,
)
from bridgedriver.config import get_driver_config

# Discovery may probe the whole port range before giving up
SESSION_START_TIMEOUT = 150.0
DEFAULT_TIMEOUT = 60.0


# ============================================================================
# CLI Group
# ============================================================================


@click.group()
@click.option("--json", "output_json", is_flag=True, help="JSON output mode")
@click.option("--session", "session_name", default="default", show_default=True, help="Named daemon session")
@click.option("--window", "window_id", default=None, help="Target window label (default: main)")
@click.option("--log-level", default=None, help="Daemon log level (or set BRIDGEDRIVER_LOG_LEVEL)")
@click.option("--verbose", "-v", is_flag=True, help="Shorthand for --log-level DEBUG")
@click.pass_context
def cli(ctx, output_json: bool, session_name: str, window_id: Optional[str], log_level: Optional[str], verbose: bool):
    """bridgectl: drive a desktop app's web view through its bridge plugin.

    Start a session first; it finds the app on localhost or the configured
    host, falling back to a scan of ports 9223-9322.
    """
    ctx.ensure_object(dict)
    ctx.obj["json"] = output_json
    ctx.obj["session"] = session_name
    ctx.obj["window"] = window_id
    ctx.obj["log_level"] = "DEBUG" if verbose else (log_level or get_driver_config().log_level)


def _forward(
    ctx: click.Context,
    command: str,
    args: Optional[Dict[str, Any]] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Any:
    """Send one request to the session daemon and return its result.

    Exits with status 1 after printing the error when the daemon
    cannot be reached or the command failed.
    """
    from bridgedriver.cli.session_client import ensure_server, send_command

    as_json = ctx.obj["json"]
    try:
        port = ensure_server(ctx.obj["session"], log_level=ctx.obj["log_level"])
    except RuntimeError as e:
        output_error(str(e), as_json)
        sys.exit(1)

    request = {
        "command": command,
        "args": args or {},
        "flags": {"window": ctx.obj["window"]},
    }
    response = send_command(port, request, timeout=timeout)
    if response.get("status") == "error":
        output_error(response.get("error", "Unknown error"), as_json)
        sys.exit(1)
    return response.get("result")


def _run(ctx: click.Context, command: str, args: Optional[Dict[str, Any]] = None, timeout: float = DEFAULT_TIMEOUT) -> None:
    """Forward and print the result as-is."""
    result = _forward(ctx, command, args, timeout)
    output(result if result is not None else "OK", as_json=ctx.obj["json"])


# ============================================================================
# Session Commands
# ============================================================================


@cli.group()
def session():
    """Start, stop and inspect the bridge session."""


@session.command("start")
@click.option("--host", default=None, help="Bridge host (default: MCP_BRIDGE_HOST, TAURI_DEV_HOST or localhost)")
@click.option("--port", type=int, default=None, help="Bridge port (default: MCP_BRIDGE_PORT or 9223)")
@click.pass_context
def session_start(ctx, host: Optional[str], port: Optional[int]):
    """Connect to the app, discovering it if needed."""
    result = _forward(ctx, "session start", {"host": host, "port": port}, timeout=SESSION_START_TIMEOUT)
    output(result, as_json=ctx.obj["json"])
    if isinstance(result, str) and result.startswith("Session not started"):
        sys.exit(1)


@session.command("stop")
@click.pass_context
def session_stop(ctx):
    """Close the bridge connection."""
    _run(ctx, "session stop")


@session.command("status")
@click.pass_context
def session_status(ctx):
    """Show whether a session is connected, and to what."""
    _run(ctx, "session status")


# ============================================================================
# Window Commands
# ============================================================================


@cli.command()
@click.pass_context
def windows(ctx):
    """List the app's web view windows."""
    result = _forward(ctx, "windows")
    as_json = ctx.obj["json"]
    output(format_windows_list(result or {}, as_json=as_json))


@cli.group()
def window():
    """Inspect or resize a single window."""


@window.command("info")
@click.argument("window_id", required=False)
@click.pass_context
def window_info(ctx, window_id: Optional[str]):
    """Show details of a window (default: main)."""
    _run(ctx, "window info", {"window": window_id})


@window.command("resize")
@click.argument("width", type=int)
@click.argument("height", type=int)
@click.argument("window_id", required=False)
@click.option("--physical", is_flag=True, help="Interpret sizes as physical pixels")
@click.pass_context
def window_resize(ctx, width: int, height: int, window_id: Optional[str], physical: bool):
    """Resize a window to WIDTH x HEIGHT."""
    _run(ctx, "window resize", {
        "width": width,
        "height": height,
        "window": window_id,
        "physical": physical,
    })


@cli.command()
@click.argument("window_id", required=False)
@click.pass_context
def resolve(ctx, window_id: Optional[str]):
    """Resolve a window label, failing if it does not exist."""
    _run(ctx, "resolve", {"window": window_id})


# ============================================================================
# Web View / Raw Commands
# ============================================================================


@cli.command("exec")
@click.argument("script")
@click.pass_context
def exec_cmd(ctx, script: str):
    """Run JavaScript in the target window and print its result."""
    _run(ctx, "exec", {"script": script})


@cli.command()
@click.argument("name")
@click.argument("args", required=False)
@click.option("--timeout", type=float, default=None, help="Request timeout in seconds")
@click.pass_context
def invoke(ctx, name: str, args: Optional[str], timeout: Optional[float]):
    """Send a raw bridge command NAME with optional JSON ARGS."""
    daemon_timeout = max(DEFAULT_TIMEOUT, (timeout or 0) + 5)
    _run(ctx, "invoke", {"name": name, "args": args, "timeout": timeout}, timeout=daemon_timeout)


@cli.command()
@click.argument("name")
@click.argument("args", required=False)
@click.pass_context
def ipc(ctx, name: str, args: Optional[str]):
    """Invoke backend command NAME with optional JSON ARGS."""
    _run(ctx, "ipc", {"name": name, "args": args})


@cli.command("backend-state")
@click.pass_context
def backend_state(ctx):
    """Show the app's backend state (name, identifier, windows)."""
    _run(ctx, "backend-state")


@cli.command()
@click.argument("action", type=click.Choice(["start", "stop"]))
@click.pass_context
def monitor(ctx, action: str):
    """Start or stop IPC monitoring."""
    _run(ctx, "monitor", {"action": action})


@cli.command()
@click.option("--filter", "filter_", default=None, help="Only events whose command contains this text")
@click.pass_context
def events(ctx, filter_: Optional[str]):
    """Show captured IPC events."""
    _run(ctx, "events", {"filter": filter_})


@cli.command()
@click.argument("name")
@click.argument("payload", required=False)
@click.pass_context
def emit(ctx, name: str, payload: Optional[str]):
    """Emit a test event NAME with optional JSON PAYLOAD."""
    _run(ctx, "emit", {"name": name, "payload": payload})


# ============================================================================
# Script Registry
# ============================================================================


@cli.group()
def script():
    """Manage scripts re-injected after every page load."""


@script.command("add")
@click.argument("script_id")
@click.argument("content", required=False)
@click.option("--kind", type=click.Choice(["inline", "url"]), default="inline", show_default=True)
@click.option("--file", "path", type=click.Path(exists=True, dir_okay=False), default=None, help="Read inline content from a file")
@click.pass_context
def script_add(ctx, script_id: str, content: Optional[str], kind: str, path: Optional[str]):
    """Register (or replace) script SCRIPT_ID."""
    if path is not None:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    if not content:
        output_error("Script content is required (argument or --file)", ctx.obj["json"])
        sys.exit(1)
    _run(ctx, "script add", {"id": script_id, "kind": kind, "content": content})


@script.command("remove")
@click.argument("script_id")
@click.pass_context
def script_remove(ctx, script_id: str):
    """Unregister SCRIPT_ID and remove it from the page."""
    _run(ctx, "script remove", {"id": script_id})


@script.command("list")
@click.pass_context
def script_list(ctx):
    """List registered scripts in registration order."""
    result = _forward(ctx, "script list")
    output(format_scripts_list(result or {}, as_json=ctx.obj["json"]))


@script.command("clear")
@click.pass_context
def script_clear(ctx):
    """Unregister every script."""
    _run(ctx, "script clear")


@script.command("check")
@click.argument("script_id")
@click.pass_context
def script_check(ctx, script_id: str):
    """Report whether SCRIPT_ID is registered."""
    _run(ctx, "script check", {"id": script_id})


# ============================================================================
# Session Daemon
# ============================================================================


@cli.command()
@click.pass_context
def shutdown(ctx):
    """Stop the session daemon (closing its bridge connection)."""
    from bridgedriver.cli.session_client import daemon_state, send_command

    name = ctx.obj["session"]
    state = daemon_state(name)
    if state is None:
        output(f"No daemon running for session '{name}'", as_json=ctx.obj["json"])
        return
    response = send_command(state["port"], {"command": "_shutdown"}, timeout=10.0)
    if response.get("status") == "error":
        output_error(response.get("error", "Unknown error"), ctx.obj["json"])
        sys.exit(1)
    message = f"Daemon for session '{name}' stopped"
    bridge = state.get("bridge") or {}
    if bridge.get("connected"):
        message += f" (disconnected from {bridge.get('app')})"
    output(message, as_json=ctx.obj["json"])


@cli.command("_serve", hidden=True)
@click.option("--session-name", required=True, help="Session name")
@click.option("--port", type=int, required=True, help="TCP port")
@click.option("--log-level", default="WARNING")
def _serve_cmd(session_name: str, port: int, log_level: str):
    """[Internal] Start the session daemon server."""
    from bridgedriver._utils import setup_logging
    from bridgedriver.cli.session_dispatch import SessionDispatch
    from bridgedriver.cli.session_server import (
        SessionServer,
        log_file_path,
        write_pid_file,
    )
    from bridgedriver.driver.session import SessionManager

    setup_logging(log_level, log_file=log_file_path(session_name))
    dispatch = SessionDispatch(SessionManager())
    write_pid_file(session_name, port)
    server = SessionServer(dispatch, port, session_name)
    server.serve_forever()


# ============================================================================
# Entry Point
# ============================================================================


def main():
    try:
        cli()
    except SystemExit:
        raise
    except Exception as e:
        # Last-resort handler for anything that escapes Click and the
        # per-command error paths.
        try:
            print(f"bridgectl: unexpected error: {e}", file=sys.stderr)
        except OSError:
            pass
        sys.exit(1)


if __name__ == "__main__":
    main()
