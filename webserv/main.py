"""Command-line entry point: read the configuration and serve."""

from __future__ import annotations

import sys
from typing import Optional, Sequence

from webserv.config import parse_all_servers
from webserv.directives import ConfigError
from webserv.server import WebServer, install_signal_handlers
from webserv.status import HttpError
from webserv.utils import RED, RESET

DEFAULT_CONFIG = "./conf/default.conf"


def config_file_from_args(argv: Sequence[str]) -> str:
    """The configuration file named on the command line, or the default one."""
    if not argv:
        print("No config file found. Using default config file.")
        return DEFAULT_CONFIG
    if len(argv) > 1:
        raise ValueError("Expected 1 config file only")
    return argv[0]


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the server; returns the process exit status."""
    args = list(sys.argv[1:] if argv is None else argv)
    server: Optional[WebServer] = None
    try:
        config_file = config_file_from_args(args)
        servers = parse_all_servers(config_file)
        server = WebServer(servers)
        install_signal_handlers(server)
        server.setup_listeners()
        server.run()
    except (ConfigError, HttpError, OSError, ValueError, LookupError, RuntimeError) as exc:
        print(f"{RED}Error: {RESET}{exc}", file=sys.stderr)
        if server is not None:
            server.close_all()
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())