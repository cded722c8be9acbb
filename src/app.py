# DevOps portfolio web app
# Minimal Flask service used as the deployment target of the pipeline
from flask import Flask, request, jsonify, g, Response
from werkzeug.exceptions import HTTPException
import os
import signal
import socket
import sys
import time
from datetime import datetime, timezone
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

PORT = int(os.getenv('PORT', '3000'))
APP_ENV = os.getenv('APP_ENV', 'development')
APP_VERSION = os.getenv('APP_VERSION', '1.0.0')

app = Flask(__name__)

# Prometheus metrics
REQUEST_COUNT = Counter(
    'app_http_requests_total',
    'Total number of HTTP requests processed by the portfolio app',
    ['method', 'endpoint', 'status']
)
REQUEST_LATENCY = Histogram(
    'app_http_request_latency_seconds',
    'Latency of HTTP requests processed by the portfolio app',
    ['endpoint']
)

SECURITY_HEADERS = {
    'X-Content-Type-Options': 'nosniff',
    'X-Frame-Options': 'SAMEORIGIN',
    'Referrer-Policy': 'no-referrer',
    'Cross-Origin-Opener-Policy': 'same-origin',
    'X-XSS-Protection': '0',
}

INDEX_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>DevOps Portfolio</title>
</head>
<body>
  <h1>DevOps Portfolio Application</h1>
  <p>Served by <strong>{hostname}</strong> ({environment}, v{version})</p>
  <ul>
    <li><a href="/health">/health</a> - health check</li>
    <li><a href="/api/info">/api/info</a> - application info</li>
    <li><a href="/metrics">/metrics</a> - Prometheus metrics</li>
  </ul>
</body>
</html>
"""


@app.before_request
def start_timer():
    """Remember when the request started so latency can be recorded."""
    if request.path == '/metrics':
        return
    g.request_start_time = time.time()


@app.after_request
def record_request_metrics(response):
    """Record request count and latency, then attach security headers."""
    if request.path != '/metrics':
        elapsed = time.time() - getattr(g, 'request_start_time', time.time())
        endpoint = request.endpoint or 'unknown'
        REQUEST_LATENCY.labels(endpoint=endpoint).observe(elapsed)
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status=response.status_code
        ).inc()
    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    return response


@app.route('/metrics')
def metrics():
    """Endpoint scraped by Prometheus"""
    return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)


# Landing page
@app.route('/')
def home():
    return INDEX_PAGE.format(
        hostname=socket.gethostname(),
        environment=APP_ENV,
        version=APP_VERSION
    )


# Health check - used by the smoke test and the container HEALTHCHECK
@app.route('/health')
def health():
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'version': APP_VERSION
    }), 200


@app.route('/api/info')
def info():
    return jsonify({
        'message': 'DevOps Portfolio Application',
        'environment': APP_ENV,
        'version': APP_VERSION,
        'hostname': socket.gethostname()
    })


@app.errorhandler(404)
def not_found(error):
    return jsonify({'error': 'Route not found'}), 404


@app.errorhandler(Exception)
def internal_error(error):
    # 405 and friends keep their own status
    if isinstance(error, HTTPException):
        return error
    app.logger.exception('Unhandled error on %s %s', request.method, request.path)
    return jsonify({'error': 'Something went wrong!'}), 500


def handle_sigterm(signum, frame):
    print('SIGTERM received, shutting down gracefully')
    sys.exit(0)


if __name__ == '__main__':
    signal.signal(signal.SIGTERM, handle_sigterm)
    print(f"Server running on port {PORT}")
    print(f"Environment: {APP_ENV}")
    print("API endpoints:")
    print("- GET /            # landing page")
    print("- GET /health      # health check")
    print("- GET /api/info    # application info")
    print("- GET /metrics     # Prometheus metrics")

    app.run(host='0.0.0.0', port=PORT)
