#!/usr/bin/env python3
"""Force a metrics refresh on a running server, wait for it, then print what is served."""
import sys
import time

import requests

API = "http://localhost:3001/api/v2"


def trigger_refresh() -> int:
    print(f"\n{'='*60}")
    print("  STEP 1: Forcing a metrics refresh")
    print(f"{'='*60}\n")

    resp = requests.post(f"{API}/refresh", timeout=300)
    if resp.status_code == 202:
        print("A refresh is already running, waiting for it")
    elif resp.status_code == 503:
        print(f"Refresh produced no cacheable record: {resp.json().get('error')}")
    else:
        resp.raise_for_status()
        print(f"Refresh finished: {resp.json()['outcome']}")
    return resp.status_code


def wait_until_idle(timeout: int = 300) -> dict:
    """Poll /status until no refresh is running."""
    t0 = time.time()
    while time.time() - t0 < timeout:
        status = requests.get(f"{API}/status", timeout=10).json()
        sched = status["scheduler"]
        if not sched["is_running"]:
            return status
        print(f"  running... last_run_at={sched['last_run_at']}", flush=True)
        time.sleep(5)
    raise TimeoutError(f"refresh still running after {timeout}s")


def print_metrics() -> bool:
    print(f"\n{'='*60}")
    print("  STEP 2: Served metrics")
    print(f"{'='*60}\n")

    resp = requests.get(f"{API}/metrics", timeout=300)
    if resp.status_code != 200:
        print(f"✗ {resp.status_code}: {resp.json().get('error')}")
        return False

    body = resp.json()
    data = body["data"]
    capacity = data.get("storage_capacity") or {}
    print(f"{'Field':<20} {'Value':>20}")
    print("-" * 41)
    print(f"{'source':<20} {body['source']:>20}")
    print(f"{'provenance':<20} {data['provenance']:>20}")
    print(f"{'storage price':<20} {str((data.get('storage_price') or {}).get('value')):>20}")
    print(f"{'write price':<20} {str((data.get('write_price') or {}).get('value')):>20}")
    print(f"{'capacity %':<20} {str(capacity.get('percentage')):>20}")
    print(f"{'epoch':<20} {str((data.get('epoch') or {}).get('number')):>20}")
    print(f"{'last update':<20} {str(body.get('last_update')):>20}")
    return True


def main():
    global API
    if len(sys.argv) > 1:
        API = sys.argv[1].rstrip("/")

    if trigger_refresh() == 202:
        wait_until_idle()
    ok = print_metrics()
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
