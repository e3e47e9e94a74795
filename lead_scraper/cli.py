"""
Command line entry point.

    lead-scraper run "Bakeries" "Kerala" "India" --leads 5
    lead-scraper serve --port 3000
    lead-scraper remote "Dentists" "California" "USA" --server http://localhost:3000
"""

import argparse
import asyncio
import functools
import sys

from tqdm import tqdm

from .config import DEFAULT_MAX_RECORDS, HOST, OUTPUT_DIR, PORT, configure_logging
from .driver import launch_playwright_driver
from .errors import LeadScraperError
from .jobs import JobManager
from .models import ExtractionQuery


class StatusBar:
    """tqdm bar driven by job status snapshots (local or from the server)."""

    def __init__(self):
        self.bar = tqdm(total=100, unit='%', bar_format='{l_bar}{bar}| {n_fmt}/{total_fmt} {postfix}')

    def update(self, state: dict):
        delta = state.get('progress', 0) - self.bar.n
        if delta > 0:
            self.bar.update(delta)
        self.bar.set_postfix_str((state.get('message') or '')[:60])

    def close(self):
        self.bar.close()


async def run_local(query: ExtractionQuery, output_dir, headed: bool = False, poll_interval: float = 0.5) -> dict:
    """Run one job in this process and return its final status (plus 'artifact')."""
    manager = JobManager(driver_factory=functools.partial(launch_playwright_driver, headless=not headed),
                         output_dir=output_dir)
    job_id = manager.create_job(query)
    bar = StatusBar()
    waiter = asyncio.ensure_future(manager.wait(job_id))
    try:
        while not waiter.done():
            bar.update(manager.get_status(job_id))
            await asyncio.wait({waiter}, timeout=poll_interval)
        state = waiter.result()
        bar.update(state)
    finally:
        bar.close()
    if state['status'] == 'complete':
        state['artifact'] = str(manager.get_artifact(job_id))
    return state


def _report(state: dict, path) -> int:
    if state.get('status') != 'complete':
        print(f"Failed: {state.get('error') or state.get('message')}", file=sys.stderr)
        return 1
    print(f"{state.get('resultCount', 0)} leads saved to {path}")
    return 0


def cmd_run(args) -> int:
    query = ExtractionQuery.create(args.category, args.region, args.country, args.leads)
    state = asyncio.run(run_local(query, args.out, headed=args.headed))
    return _report(state, state.get('artifact'))


def cmd_serve(args) -> int:
    from .app import main as serve
    serve(host=args.host, port=args.port)
    return 0


def cmd_remote(args) -> int:
    from .client import LeadScraperClient
    client = LeadScraperClient(args.server)
    job_id = client.start(args.category, args.region, args.country, args.leads)
    print(f"Job {job_id} started on {args.server}")
    bar = StatusBar()
    try:
        state = client.wait(job_id, poll_interval=args.poll, on_update=bar.update)
    finally:
        bar.close()
    path = client.download(job_id, args.out) if state.get('status') == 'complete' else None
    return _report(state, path)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog='lead-scraper', description='Google Maps lead scraper')
    p.add_argument('--log-level', default=None, help='DEBUG, INFO, WARNING...')
    sub = p.add_subparsers(dest='command', required=True)

    def add_query_args(sp):
        sp.add_argument('category', help='Business category, e.g. "Dentists"')
        sp.add_argument('region', help='State or region, e.g. "California"')
        sp.add_argument('country', help='Country, e.g. "USA"')
        sp.add_argument('--leads', type=int, default=DEFAULT_MAX_RECORDS, help='Max leads (1-100)')
        sp.add_argument('--out', default=str(OUTPUT_DIR), help='Directory for the workbook')

    run = sub.add_parser('run', help='Scrape in this process')
    add_query_args(run)
    run.add_argument('--headed', action='store_true', help='Show the browser window')
    run.set_defaults(func=cmd_run)

    serve = sub.add_parser('serve', help='Start the HTTP API')
    serve.add_argument('--host', default=HOST)
    serve.add_argument('--port', type=int, default=PORT)
    serve.set_defaults(func=cmd_serve)

    remote = sub.add_parser('remote', help='Submit to a running server and download the result')
    add_query_args(remote)
    remote.add_argument('--server', required=True, help='Server base URL')
    remote.add_argument('--poll', type=float, default=2.0, help='Seconds between status polls')
    remote.set_defaults(func=cmd_remote)
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.log_level:
        configure_logging(args.log_level.upper())
    elif args.command != 'serve':
        configure_logging('WARNING')
    try:
        return args.func(args)
    except LeadScraperError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == '__main__':
    sys.exit(main())
