#!/usr/bin/env python3
"""
Benchmark Script for Session Tracking API

Creates sessions, then tracks events through the batch endpoint and
measures timeline reads.

Usage:
    python scripts/benchmark_tracking.py [base-url]
"""

import sys
import time
import requests
from uuid import uuid4
import statistics

EVENT_TYPES = ["landing", "page_view", "click", "product_view", "add_to_cart", "checkout_start"]
BATCH_SIZE = 25


def create_sessions(base_url: str, count: int):
    session_ids = []
    for i in range(count):
        session_id = f"bench_{uuid4()}"
        response = requests.post(
            f"{base_url}/sessions",
            json={"session_id": session_id, "external_id": f"bench_user_{i % 10}"},
            timeout=10
        )
        if response.status_code != 201:
            print(f"Error creating session {i}: Status {response.status_code}")
            continue
        session_ids.append(session_id)
    return session_ids


def generate_events(session_ids, count: int):
    return [
        {
            "session_id": session_ids[i % len(session_ids)],
            "event_type": EVENT_TYPES[i % len(EVENT_TYPES)],
            "event_data": {"benchmark": True, "index": i}
        }
        for i in range(count)
    ]


def benchmark_tracking(base_url: str, session_ids, total_events: int = 5000):
    """Benchmark batch event tracking"""
    print(f"\n{'=' * 60}")
    print(f"BENCHMARK: Tracking {total_events:,} events")
    print(f"{'=' * 60}")

    events = generate_events(session_ids, total_events)
    total_successful = 0
    total_failed = 0
    batch_times = []

    start_time = time.time()

    for i in range(0, total_events, BATCH_SIZE):
        batch = events[i:i + BATCH_SIZE]
        batch_start = time.time()

        try:
            response = requests.post(
                f"{base_url}/events/batch",
                json={"events": batch},
                timeout=30
            )

            if response.status_code == 201:
                data = response.json()
                total_successful += data["successful"]
                total_failed += data["failed"]
            else:
                print(f"Error in batch {i // BATCH_SIZE}: Status {response.status_code}")

        except requests.RequestException as e:
            print(f"Error in batch {i // BATCH_SIZE}: {e}")

        batch_time = time.time() - batch_start
        batch_times.append(batch_time)

        if (i // BATCH_SIZE) % 40 == 0:
            print(f"Progress: {i + len(batch):,} / {total_events:,} events | "
                  f"Batch time: {batch_time:.2f}s")

    total_time = time.time() - start_time

    print(f"\n{'=' * 60}")
    print("TRACKING RESULTS")
    print(f"{'=' * 60}")
    print(f"Total events:        {total_events:,}")
    print(f"Successful:          {total_successful:,}")
    print(f"Failed:              {total_failed:,}")
    print(f"Total time:          {total_time:.2f}s")
    print(f"Events/sec:          {total_events / total_time:,.0f}")
    print(f"Avg batch time:      {statistics.mean(batch_times):.3f}s")
    print(f"Min batch time:      {min(batch_times):.3f}s")
    print(f"Max batch time:      {max(batch_times):.3f}s")
    print(f"{'=' * 60}\n")


def benchmark_timelines(base_url: str, session_ids):
    """Benchmark timeline and analytics reads"""
    for label, suffix in (("Timeline", ""), ("Analytics", "/analytics")):
        times = []
        for session_id in session_ids:
            start = time.time()
            response = requests.get(f"{base_url}/sessions/{session_id}{suffix}", timeout=10)
            times.append((time.time() - start) * 1000)
            if response.status_code != 200:
                print(f"Error reading {session_id}: Status {response.status_code}")

        times.sort()
        print(f"{label:10} p50: {statistics.median(times):.1f}ms | "
              f"p95: {times[int(len(times) * 0.95) - 1]:.1f}ms | "
              f"max: {times[-1]:.1f}ms")


def main():
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

    print("\n" + "=" * 60)
    print("SESSION TRACKING API - BENCHMARK")
    print("=" * 60)
    print(f"Target: {base_url}")
    print("=" * 60)

    # Test connection
    try:
        response = requests.get(f"{base_url}/health", timeout=5)
        if response.status_code != 200:
            print("Error: API is not healthy")
            sys.exit(1)
    except requests.RequestException as e:
        print(f"Error: Cannot connect to API: {e}")
        sys.exit(1)

    session_ids = create_sessions(base_url, 100)
    if not session_ids:
        print("Error: No sessions could be created")
        sys.exit(1)

    benchmark_tracking(base_url, session_ids)
    benchmark_timelines(base_url, session_ids)

    print("\n" + "=" * 60)
    print("BENCHMARK COMPLETE")
    print("=" * 60)


if __name__ == "__main__":
    main()
