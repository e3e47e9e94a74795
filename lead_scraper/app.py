#!/usr/bin/env python3
"""
Lead Scraper - HTTP API
Run this to serve the API at http://localhost:3000 (PORT overrides).

Jobs run on one background event loop; every route hands its work to that
loop so job state is never touched from request threads.

Usage:
    python -m lead_scraper.app
    lead-scraper serve --port 3000
"""

from flask import Flask, jsonify, request, send_file

from .config import HOST, PORT, configure_logging
from .errors import LeadScraperError, NotFoundError
from .jobs import BackgroundLoop, JobManager


def create_app(manager: JobManager | None = None, loop: BackgroundLoop | None = None,
               start_reaper: bool = True) -> Flask:
    app = Flask(__name__)
    loop = (loop or BackgroundLoop()).start()
    manager = manager or JobManager()
    if start_reaper:
        loop.call(manager.start_reaper)
    app.extensions['lead_scraper'] = {'manager': manager, 'loop': loop}

    @app.errorhandler(LeadScraperError)
    def handle_error(e):
        return jsonify({'error': str(e)}), e.status_code

    # =========================================================================
    #  Routes
    # =========================================================================

    @app.route('/scrape', methods=['POST'])
    def scrape():
        """Start a scrape job. Body: {category, region|state, country, leads}."""
        data = request.get_json(silent=True) or {}
        job_id = loop.call(manager.create_job, data)
        return jsonify({'jobId': job_id, 'status': 'started'})

    @app.route('/status/<job_id>')
    def status(job_id):
        return jsonify(loop.call(manager.get_status, job_id))

    @app.route('/download/<job_id>')
    def download(job_id):
        """Send the finished workbook."""
        path = loop.call(manager.get_artifact, job_id)
        if not path.exists():
            raise NotFoundError('File not found')
        name = loop.call(manager.download_name, job_id)
        return send_file(path, as_attachment=True, download_name=name)

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok', 'jobs': loop.call(len, manager.jobs)})

    return app


# =========================================================================
#  Main
# =========================================================================

def main(host: str = HOST, port: int = PORT):
    configure_logging()
    app = create_app()
    print("\n" + "=" * 50)
    print("  Lead Scraper API")
    print(f"  http://{host}:{port}")
    print("=" * 50 + "\n")
    app.run(host=host, port=port, debug=False, threaded=True)


if __name__ == '__main__':
    main()
