#!/usr/bin/env python3
"""
Crawl State Command Line Tool

This module is the entry point for inspecting and maintaining a crawl state
database outside the crawler. It handles configuration, command-line
arguments, logging setup, and dispatch to the storage operations.
"""

import argparse
import logging
import os
import sys

import yaml
from tqdm import tqdm

from .errors import StorageError
from .storage import Storage
from .utils import request_id

logger = logging.getLogger("crawlstore")

DEFAULTS = {
    'db_path': os.path.join('data', 'state', 'crawlstore.sqlite'),
    'timeout_sec': 30,
    'log_dir': os.path.join('data', 'logs'),
}


def parse_args(argv=None):
    """Parse command-line arguments.

    Returns:
        argparse.Namespace: Global options (config, db, verbose) plus the
            chosen subcommand in `cmd` and its own arguments
    """
    ap = argparse.ArgumentParser(prog='crawlstore', description='Crawl state storage')
    ap.add_argument('--config', default='config.yaml')
    ap.add_argument('--db', help='SQLite file; overrides db_path from the config')
    ap.add_argument('--verbose', action='store_true')
    sub = ap.add_subparsers(dest='cmd', required=True)

    sub.add_parser('init', help='Create missing tables')
    sub.add_parser('clear', help='Drop all tables; only init or reset make the store usable again')
    sub.add_parser('reset', help='Drop all tables and recreate them empty')
    sub.add_parser('stats', help='Show row counts')

    p = sub.add_parser('enqueue', help='Queue one payload per line of FILE ("-" for stdin)')
    p.add_argument('file')

    p = sub.add_parser('dequeue', help='Pop payloads in FIFO order and print them')
    p.add_argument('-n', type=int, default=1)

    p = sub.add_parser('visit', help='Mark GET requests for URLs as visited')
    p.add_argument('urls', nargs='+')

    p = sub.add_parser('seen', help='Check whether GET requests for URLs were visited')
    p.add_argument('urls', nargs='+')

    p = sub.add_parser('cookies', help='Read or write the cookie string of a host')
    csub = p.add_subparsers(dest='cookie_cmd', required=True)
    g = csub.add_parser('get')
    g.add_argument('host')
    s = csub.add_parser('set')
    s.add_argument('host')
    s.add_argument('value')
    return ap.parse_args(argv)


def load_config(path):
    """Load configuration from a YAML file, falling back to DEFAULTS.

    Searches the provided path (relative to the current working directory)
    and then the package directory. A missing file is not an error.
    """
    candidates = [path]
    if not os.path.isabs(path):
        candidates.append(os.path.join(os.path.dirname(__file__), path))

    cfg = dict(DEFAULTS)
    for candidate in candidates:
        if os.path.exists(candidate):
            with open(candidate, 'r', encoding='utf-8') as f:
                cfg.update(yaml.safe_load(f) or {})
            break
    return cfg


def setup_logging(verbose: bool, log_dir: str):
    """Configure logging to both console and an appending file under log_dir."""
    os.makedirs(log_dir, exist_ok=True)
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(os.path.join(log_dir, 'crawlstore.log'), mode='a', encoding='utf-8')
        ]
    )


def _read_lines(path):
    if path == '-':
        return [ln.rstrip('\n') for ln in sys.stdin]
    with open(path, 'r', encoding='utf-8') as f:
        return [ln.rstrip('\n') for ln in f]


def run(args, store: Storage) -> int:
    """Execute one subcommand against an open store."""
    if args.cmd == 'init':
        print(f"Initialized {store.path}")
    elif args.cmd == 'clear':
        store.clear()
        print(f"Cleared {store.path} (run init before using it again)")
    elif args.cmd == 'reset':
        store.reset()
        print(f"Reset {store.path}")
    elif args.cmd == 'stats':
        print(f"visited rows: {store.visited_count()}")
        print(f"cookie hosts: {store.cookie_count()}")
        print(f"queue size:   {store.queue_size()}")
    elif args.cmd == 'enqueue':
        lines = [ln for ln in _read_lines(args.file) if ln]
        for ln in tqdm(lines, desc='enqueue', unit='req', disable=len(lines) < 100):
            store.add_request(ln.encode('utf-8'))
        print(f"Queued {len(lines)} requests")
    elif args.cmd == 'dequeue':
        for _ in range(max(0, args.n)):
            payload = store.get_request()
            if payload is None:
                print("(queue empty)")
                break
            print(payload.decode('utf-8', 'replace'))
    elif args.cmd == 'visit':
        for url in args.urls:
            store.visited(request_id(url))
    elif args.cmd == 'seen':
        for url in args.urls:
            print(f"{'yes' if store.is_visited(request_id(url)) else 'no '} {url}")
    elif args.cmd == 'cookies':
        if args.cookie_cmd == 'set':
            store.set_cookies(args.host, args.value)
        else:
            value = store.cookies(args.host)
            if value is None:
                print(f"(no cookies for {args.host})")
                return 1
            print(value)
    return 0


def main(argv=None) -> int:
    """Main entry point for the crawlstore command."""
    args = parse_args(argv)
    cfg = load_config(args.config)
    if args.db:
        cfg['db_path'] = args.db

    setup_logging(args.verbose, cfg['log_dir'])

    store = Storage.from_config(cfg)
    try:
        if args.cmd == 'clear':
            # no schema: clearing a store must not recreate it first
            store.db.open()
        else:
            store.init()
        return run(args, store)
    except StorageError as e:
        logger.error(f"{args.cmd} failed: {e}")
        return 1
    finally:
        store.close()


if __name__ == '__main__':
    sys.exit(main())
