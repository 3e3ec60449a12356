#!/usr/bin/env python3
"""
Command-line interface for mdbear - static site generator.
"""

import sys
import argparse
from typing import List, Optional

from . import __version__
from .core import build_site, setup_logging
from .errors import MdbearError
from .scaffold import create_project
from .serve import DEFAULT_PORT, serve

DEFAULT_CONFIG = 'config.toml'


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='mdbear',
        description='A static site generator for Bear Blog style websites.'
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--no-log-file', action='store_true',
                        help='Do not write a log file under logs/')

    # Also accepted after the subcommand; absent there, the top-level value stands.
    log_options = argparse.ArgumentParser(add_help=False)
    log_options.add_argument('--no-log-file', action='store_true', default=argparse.SUPPRESS,
                             help='Do not write a log file under logs/')

    subparsers = parser.add_subparsers(dest='command', metavar='<command>')
    subparsers.required = True

    init_parser = subparsers.add_parser('init', help='Initialize a new mdbear site')
    init_parser.add_argument('name', help='Name of the new site/project to create')

    build_cmd = subparsers.add_parser('build', parents=[log_options], help='Build the static site from source files')
    build_cmd.add_argument('-c', '--config', default=DEFAULT_CONFIG,
                           help='Configuration file to use for building the site')

    serve_cmd = subparsers.add_parser('serve', parents=[log_options], help='Serve the site locally with auto-rebuild')
    serve_cmd.add_argument('-p', '--port', type=int, default=DEFAULT_PORT,
                           help='Port number to serve the site on')
    serve_cmd.add_argument('-c', '--config', default=DEFAULT_CONFIG,
                           help='Configuration file to use for serving the site')
    serve_cmd.add_argument('--no-browser', action='store_true',
                           help='Do not open the site in a web browser')
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        if args.command == 'init':
            create_project(args.name)
            return

        setup_logging(log_to_file=not args.no_log_file)

        if args.command == 'build':
            build_site(args.config)
        elif args.command == 'serve':
            serve(args.config, port=args.port, open_browser=not args.no_browser)
    except (MdbearError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
