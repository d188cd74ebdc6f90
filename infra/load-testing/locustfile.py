"""
Locust load test for the Pinpin Storage API download endpoint.

Test profile:
- 50 concurrent users (configurable)
- 80% requests for objects that exist
- 10% requests for missing objects (expect 404)
- 10% requests with unsafe paths (expect 400, no storage call)

Usage:
    # Basic run (web UI)
    locust -f locustfile.py --host http://localhost:8000

    # Headless run for CI/CD
    locust -f locustfile.py --host http://localhost:8000 \
        --headless -u 50 -r 10 -t 300s \
        --csv=results/load_test

    # With a list of real object keys (one per line)
    OBJECT_KEYS_FILE=keys.txt locust -f locustfile.py

Metrics collected:
- Response times (P50, P95, P99)
- Throughput (requests/sec)
- Error rate
- Custom: bytes streamed, signed vs proxied responses
"""

import os
import random
import uuid
from pathlib import Path
from typing import List

from locust import HttpUser, task, between, events


# =============================================================================
# Configuration
# =============================================================================

OBJECT_KEYS_FILE = os.environ.get("OBJECT_KEYS_FILE")
DEFAULT_OBJECT_KEY = os.environ.get("LOAD_TEST_OBJECT_KEY", "load-test/sample.pdf")

# Request mix (should sum to 100)
EXISTING_WEIGHT = 80
MISSING_WEIGHT = 10
UNSAFE_WEIGHT = 10

UNSAFE_PATHS = [
    "../etc/passwd",
    "/absolute/path.pdf",
    "users/abc/../../secret.pdf",
]


# =============================================================================
# Test Data Management
# =============================================================================

class ObjectKeyPool:
    """
    Pool of object keys to request.

    Keys are loaded once at startup to avoid disk I/O during tests.
    """

    def __init__(self):
        self.keys: List[str] = []
        self._loaded = False

    def load(self) -> None:
        if self._loaded:
            return

        if OBJECT_KEYS_FILE and Path(OBJECT_KEYS_FILE).exists():
            lines = Path(OBJECT_KEYS_FILE).read_text(encoding="utf-8").splitlines()
            self.keys = [line.strip() for line in lines if line.strip()]

        if not self.keys:
            self.keys = [DEFAULT_OBJECT_KEY]

        self._loaded = True
        print(f"Loaded {len(self.keys)} object keys")

    def random_request(self) -> tuple[str, str]:
        """
        Pick a request based on the weight distribution.

        Returns:
            Tuple of (storage_path, request_type)
        """
        self.load()

        roll = random.randint(1, 100)
        if roll <= EXISTING_WEIGHT:
            return random.choice(self.keys), "existing"
        if roll <= EXISTING_WEIGHT + MISSING_WEIGHT:
            return f"load-test/missing-{uuid.uuid4().hex}.pdf", "missing"
        return random.choice(UNSAFE_PATHS), "unsafe"


key_pool = ObjectKeyPool()


# =============================================================================
# Custom Metrics
# =============================================================================

responses_by_type: dict = {"signed_url": 0, "proxy": 0}
bytes_streamed: int = 0
unexpected_status: int = 0


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    """Print summary statistics when test ends."""
    print("\n" + "=" * 60)
    print("LOAD TEST SUMMARY")
    print("=" * 60)

    print(f"\nDownload Responses:")
    print(f"  Signed URLs: {responses_by_type['signed_url']}")
    print(f"  Proxied: {responses_by_type['proxy']}")
    print(f"  Bytes streamed: {bytes_streamed / (1024 * 1024):.2f} MB")
    print(f"  Unexpected status: {unexpected_status}")

    print("=" * 60)


# =============================================================================
# Load Test User
# =============================================================================

EXPECTED_STATUS = {
    "existing": (200,),
    "missing": (404,),
    "unsafe": (400,),
}


class DownloadUser(HttpUser):
    """
    Simulates a dashboard user downloading stored files.

    Signed URL responses are followed like a browser would; proxied
    responses are read to the end.
    """

    wait_time = between(0.5, 2.0)

    follow_signed_urls = os.environ.get("FOLLOW_SIGNED_URLS", "1") == "1"

    @task(1)
    def download(self):
        global bytes_streamed, unexpected_status

        storage_path, request_type = key_pool.random_request()

        with self.client.post(
            "/api/download",
            json={"storagePath": storage_path, "fileName": "load-test.pdf"},
            headers={"X-Correlation-ID": f"load-{uuid.uuid4()}"},
            name=f"Download ({request_type})",
            catch_response=True,
        ) as response:
            if response.status_code not in EXPECTED_STATUS[request_type]:
                unexpected_status += 1
                response.failure(f"Unexpected status: {response.status_code}")
                return

            if response.status_code != 200:
                response.success()
                return

            content_type = response.headers.get("Content-Type", "")
            if content_type.startswith("application/json") and "signedUrl" in response.text:
                responses_by_type["signed_url"] += 1
                signed_url = response.json()["signedUrl"]
                response.success()
            else:
                responses_by_type["proxy"] += 1
                bytes_streamed += len(response.content)
                response.success()
                return

        if self.follow_signed_urls:
            fetched = self.client.get(signed_url, name="Fetch signed URL")
            if fetched.status_code == 200:
                bytes_streamed += len(fetched.content)


# =============================================================================
# Alternative: Burst Load User
# =============================================================================

class BurstUser(HttpUser):
    """
    User that requests downloads in rapid bursts without waiting.

    Use this for stress testing to find breaking points.
    """

    wait_time = between(0.1, 0.3)

    @task(1)
    def rapid_download(self):
        global unexpected_status

        response = self.client.post(
            "/api/files/download",
            json={"storagePath": random.choice(key_pool.keys or [DEFAULT_OBJECT_KEY])},
            name="Burst: Download",
        )

        if response.status_code >= 500:
            unexpected_status += 1


# =============================================================================
# Entry point for direct execution
# =============================================================================

if __name__ == "__main__":
    print("Run with: locust -f locustfile.py --host http://localhost:8000")
