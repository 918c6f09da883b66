#!/usr/bin/env python3
"""
Command-line client that prints the agent log feed.

Usage:
    python tail.py
    python tail.py --follow
    python tail.py --file openclaw-2026-10-16.log --level error
    python tail.py --url http://localhost:3001 --json
"""

import argparse
import json
import sys
import time

import httpx


EVENT_ICONS = {
    "user-message": "💬",
    "agent-thinking": "🤖",
    "agent-response": "📤",
    "tool-use": "🔧",
    "error": "🔥",
    "system": "⚙️ ",
}


def group_consecutive(logs: list[dict]) -> list[tuple[dict, int]]:
    """Collapse runs of events with the same type and message into (event, count) pairs."""
    grouped = []
    for log in logs:
        if grouped:
            last, count = grouped[-1]
            if last.get("eventType") == log.get("eventType") and last.get("message") == log.get("message"):
                grouped[-1] = (last, count + 1)
                continue
        grouped.append((log, 1))
    return grouped


def format_event(log: dict, count: int = 1) -> str:
    """Format one event as a single console line."""
    icon = EVENT_ICONS.get(log.get("eventType", ""), "  ")
    clock = log.get("time") or "--:--:--"
    message = log.get("message", "").replace("\n", " ")
    if len(message) > 120:
        message = message[:117] + "..."
    repeat = f" ×{count}" if count > 1 else ""
    return f"{clock:>11}  {icon} {log.get('subsystem', 'system'):<24.24} {message}{repeat}"


def format_output(data: dict) -> str:
    """Format a feed response for readable console output."""
    lines = []
    
    error = data.get("error")
    if error:
        lines.append(f"⚠️  {error}")
    
    logs = data.get("logs", [])
    grouped = group_consecutive(logs)
    for log, count in grouped:
        lines.append(format_event(log, count))
    
    # Footer
    lines.append("-" * 40)
    lines.append(
        f"{data.get('showing', 0)} of {data.get('total', 0)} events "
        f"({len(grouped)} grouped) from {data.get('path', '?')}"
    )
    counts = data.get("counts") or {}
    summary = ", ".join(f"{name}: {n}" for name, n in counts.items() if n)
    if summary:
        lines.append(f"  {summary}")
    
    return "\n".join(lines)


def fetch(client: httpx.Client, url: str, params: dict) -> dict:
    response = client.get(f"{url}/api/logs", params=params)
    if response.status_code != 200:
        raise RuntimeError(f"API returned {response.status_code}: {response.text}")
    return response.json()


def follow(client: httpx.Client, url: str, params: dict, interval: float) -> None:
    """Poll the feed and print events as they appear."""
    seen_total = None
    
    while True:
        data = fetch(client, url, params)
        total = data.get("total", 0)
        logs = data.get("logs", [])
        
        if seen_total is None or total < seen_total:
            # First poll or the file was rotated
            new_logs = logs
            if data.get("error"):
                print(f"⚠️  {data['error']}", file=sys.stderr)
        else:
            new_logs = logs[max(0, len(logs) - (total - seen_total)):] if total > seen_total else []
        
        for log, count in group_consecutive(new_logs):
            print(format_event(log, count), flush=True)
        
        seen_total = total
        time.sleep(interval)


def main():
    parser = argparse.ArgumentParser(
        description="Print the agent log feed",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python tail.py
  python tail.py --follow --interval 2
  python tail.py --level error --json
        """
    )
    parser.add_argument("--url", default="http://localhost:3001", help="API server URL")
    parser.add_argument("--dir", help="Log directory (server default if omitted)")
    parser.add_argument("--file", help="Log file name (today's file if omitted)")
    parser.add_argument("--limit", type=int, default=100, help="Number of recent events")
    parser.add_argument("--level", default="all", help="Only show events of this level")
    parser.add_argument("--json", action="store_true", help="Output raw JSON instead of formatted")
    parser.add_argument("--follow", "-f", action="store_true", help="Keep polling for new events")
    parser.add_argument("--interval", type=float, default=5.0, help="Polling interval in seconds")
    
    args = parser.parse_args()
    
    params = {"limit": args.limit, "level": args.level}
    if args.dir:
        params["dir"] = args.dir
    if args.file:
        params["file"] = args.file
    
    try:
        with httpx.Client(timeout=30.0) as client:
            if args.follow:
                follow(client, args.url, params, args.interval)
                return
            
            data = fetch(client, args.url, params)
            if args.json:
                print(json.dumps(data, indent=2, ensure_ascii=False))
            else:
                print(format_output(data))
    
    except KeyboardInterrupt:
        pass
    except httpx.ConnectError:
        print(f"Error: Cannot connect to {args.url}", file=sys.stderr)
        print("Make sure the server is running: uvicorn logfeed.main:app --port 3001", file=sys.stderr)
        sys.exit(1)
    except (httpx.HTTPError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
