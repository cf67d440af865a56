"""Output formatting for CLI: text (human) and JSON (agent) modes."""

from __future__ import annotations

import json
import sys
from typing import Any, Dict, List


def _safe_print(text: str, file=None) -> None:
    """Print text, replacing characters the stream encoding cannot represent."""
    file = file or sys.stdout
    try:
        print(text, file=file)
    except UnicodeEncodeError:
        encoding = getattr(file, "encoding", "utf-8") or "utf-8"
        print(text.encode(encoding, errors="replace").decode(encoding), file=file)
    except BrokenPipeError:
        pass


def output(data: Any, as_json: bool = False) -> None:
    """Print data to stdout in the requested format."""
    if as_json:
        if isinstance(data, str):
            try:
                parsed = json.loads(data)
                _safe_print(json.dumps(parsed, indent=2, ensure_ascii=False))
            except (json.JSONDecodeError, TypeError):
                _safe_print(json.dumps({"message": data}, ensure_ascii=False))
        elif isinstance(data, (dict, list)):
            _safe_print(json.dumps(data, indent=2, ensure_ascii=False))
        else:
            _safe_print(json.dumps({"result": data}, ensure_ascii=False, default=str))
    else:
        if isinstance(data, str):
            _safe_print(data)
        elif isinstance(data, dict):
            for k, v in data.items():
                if isinstance(v, (dict, list)):
                    v = json.dumps(v, ensure_ascii=False)
                _safe_print(f"{k}: {v}")
        elif isinstance(data, list):
            for item in data:
                _safe_print(item if isinstance(item, str) else json.dumps(item, ensure_ascii=False))
        else:
            _safe_print(str(data))


def output_error(message: str, as_json: bool = False) -> None:
    """Print an error message to stderr."""
    if as_json:
        _safe_print(
            json.dumps({"error": message}, ensure_ascii=False),
            file=sys.stderr,
        )
    else:
        _safe_print(f"Error: {message}", file=sys.stderr)


def format_windows_list(listing: Dict[str, Any], as_json: bool = False) -> str:
    """Format a ``list_windows`` result for display."""
    if as_json:
        return json.dumps(listing, indent=2, ensure_ascii=False)
    lines = []
    for w in listing.get("windows", []):
        marks = []
        if w.get("focused"):
            marks.append("focused")
        if not w.get("visible", True):
            marks.append("hidden")
        suffix = f" [{', '.join(marks)}]" if marks else ""
        lines.append(f"{w.get('label', '?')}: {w.get('title', '')} ({w.get('url', '')}){suffix}")
    lines.append(f"{listing.get('totalCount', len(lines))} window(s), default '{listing.get('defaultWindow', 'main')}'")
    return "\n".join(lines)


def format_scripts_list(listing: Dict[str, List[Dict[str, Any]]], as_json: bool = False) -> str:
    """Format registered scripts, one per line, in registration order."""
    if as_json:
        return json.dumps(listing, indent=2, ensure_ascii=False)
    scripts = listing.get("scripts", [])
    if not scripts:
        return "No scripts registered"
    lines = []
    for s in scripts:
        content = s.get("content", "")
        if len(content) > 60:
            content = content[:57] + "..."
        lines.append(f"[{s.get('id')}] {s.get('kind')}: {content}")
    return "\n".join(lines)
