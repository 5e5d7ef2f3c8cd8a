#!/usr/bin/env python3
"""
Purple Sweep - Command Line Interface

Examples:
    purple-sweep                               # directory -> privesc -> lateral
    purple-sweep --hosts dc01 fs01 --skip-directory
    purple-sweep --hosts-file hosts.txt --format csv xlsx -v
"""

import argparse
import logging
import sys
import threading
from pathlib import Path
from typing import List, Optional

from . import __version__
from .lib.config import config
from .lib.errors import NothingToScan
from .lib.logger import set_console_level
from .utilities.orchestrator import AssessmentOrchestrator

EXIT_OK = 0
EXIT_DEGRADED = 1
EXIT_NOTHING_TO_SCAN = 2
EXIT_INTERRUPTED = 130


def read_hosts_file(path: str) -> List[str]:
    """One host per line; blank lines and ``#`` comments ignored."""
    hosts = []
    for line in Path(path).read_text(encoding='utf-8').splitlines():
        line = line.split('#', 1)[0].strip()
        if line:
            hosts.append(line)
    return hosts


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='purple-sweep',
        description='Host/domain security-posture scanner - privilege-escalation '
                    'detection and lateral-movement reachability',
    )
    parser.add_argument('--hosts', nargs='+', metavar='HOST',
                        help='Hosts to probe (default: enabled directory computers)')
    parser.add_argument('--hosts-file', metavar='FILE',
                        help='File with one host per line')
    parser.add_argument('--skip-privesc', action='store_true',
                        help='Skip privilege-escalation detection')
    parser.add_argument('--skip-lateral', action='store_true',
                        help='Skip reachability probing')
    parser.add_argument('--skip-directory', action='store_true',
                        help='Skip directory enumeration')
    parser.add_argument('--workers', type=int, metavar='N',
                        help='Concurrent host probes (default: lateral.max_workers)')
    parser.add_argument('--format', nargs='+', dest='formats',
                        choices=['csv', 'json', 'xlsx'],
                        help='Report formats (default: reporting.formats)')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Show progress on the console')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    hosts: Optional[List[str]] = None
    if args.hosts or args.hosts_file:
        hosts = list(args.hosts or [])
        if args.hosts_file:
            hosts.extend(read_hosts_file(args.hosts_file))

    if args.workers:
        config.set('lateral.max_workers', args.workers)

    orchestrator = AssessmentOrchestrator()
    if args.verbose:
        set_console_level(logging.INFO)

    cancel = threading.Event()
    try:
        results = orchestrator.run(
            hosts=hosts,
            run_privesc=not args.skip_privesc,
            run_lateral=not args.skip_lateral,
            run_directory=not args.skip_directory,
            formats=args.formats,
            cancel_event=cancel,
        )
    except NothingToScan as exc:
        print(f"Nothing to scan: {exc}", file=sys.stderr)
        return EXIT_NOTHING_TO_SCAN
    except KeyboardInterrupt:
        cancel.set()
        print("Interrupted", file=sys.stderr)
        return EXIT_INTERRUPTED

    print(f"Session {results['session_id']}: {results['status']}")
    for phase, status in results['phase_status'].items():
        print(f"  {phase:<10} {status}")
    for name, path in results.get('reports', {}).items():
        print(f"  -> {path}")

    if results.get('cancelled'):
        return EXIT_INTERRUPTED
    return EXIT_OK if results['status'] == 'completed' else EXIT_DEGRADED


if __name__ == '__main__':
    sys.exit(main())
