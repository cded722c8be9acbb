# Container health probe (Dockerfile / docker-compose HEALTHCHECK)
# Exit code 0 = healthy, 1 = unhealthy or unreachable
import os
import sys

import requests

PORT = int(os.getenv('PORT', '3000'))
HEALTH_URL = f"http://localhost:{PORT}/health"
TIMEOUT_SECONDS = 2


def check(url=HEALTH_URL, timeout=TIMEOUT_SECONDS):
    """Probe the health endpoint once and return the process exit code."""
    try:
        response = requests.get(url, timeout=timeout)
    except requests.exceptions.RequestException:
        print('HEALTHCHECK FAILED', file=sys.stderr)
        return 1

    print(f"HEALTHCHECK STATUS: {response.status_code}")
    return 0 if response.status_code == 200 else 1


def main():
    sys.exit(check())


if __name__ == '__main__':
    main()
