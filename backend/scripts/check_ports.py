#!/usr/bin/env python3
"""
Listener port check for the motion funnel.

Checks the ports of every enabled trigger listener (HTTP, SMTP) before the
service starts, so a port held by a previous instance shows up as a clear
error instead of a listener that silently stays down.

Usage:
    python scripts/check_ports.py
    python scripts/check_ports.py --wait 30

Exit codes:
    0 - All listener ports are available
    1 - A port is in use (and --wait timeout reached)
"""

import argparse
import sys
import time
from typing import Dict, List

from motion_funnel.core.config import Settings
from motion_funnel.utils.sockets import is_port_available


def listener_ports(settings: Settings) -> Dict[str, int]:
    """Ports of the enabled listeners that bind locally (MQTT only connects out)."""
    ports = {}
    if settings.HTTP_ENABLED:
        ports["http"] = settings.HTTP_PORT
    if settings.SMTP_ENABLED:
        ports["smtp"] = settings.SMTP_PORT
    return ports


def busy_ports(ports: Dict[str, int], host: str) -> List[str]:
    return [name for name, port in ports.items() if not is_port_available(host, port)]


def main():
    parser = argparse.ArgumentParser(
        description="Check that the trigger listener ports are free"
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to check (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--wait",
        type=int,
        default=0,
        metavar="SECONDS",
        help="Wait up to SECONDS for the ports to become available"
    )

    args = parser.parse_args()
    ports = listener_ports(Settings())

    deadline = time.time() + args.wait
    busy = busy_ports(ports, args.host)
    if busy and args.wait > 0:
        print(f"Ports in use ({', '.join(busy)}), waiting up to {args.wait}s...")
        while busy and time.time() < deadline:
            time.sleep(1)
            busy = busy_ports(ports, args.host)

    if busy:
        for name in busy:
            print(f"ERROR: {name.upper()} listener port {ports[name]} is in use", file=sys.stderr)
            print(f"Check: ss -tlnp | grep {ports[name]}", file=sys.stderr)
        sys.exit(1)

    for name, port in ports.items():
        print(f"{name.upper()} listener port {port} is available")
    sys.exit(0)


if __name__ == "__main__":
    main()
