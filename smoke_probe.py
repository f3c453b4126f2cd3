#!/usr/bin/env python3
"""

Smoke/stability probe for the JSON responder:
- Sends repeated HTTP requests
- Checks every reply against the {ok, msg, time} contract
- Measures latency + availability
- Writes logs (file + console)
- Creates a JSON report
- Optionally captures docker logs when a probe failed
"""

from __future__ import annotations

import argparse
import json
import logging
import subprocess
import sys
import time
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

import requests

@dataclass
class Result:
    ts_utc: str
    ok: bool
    status_code: Optional[int]
    latency_ms: Optional[float]
    error: Optional[str]
    time: Optional[str] = None

def utc_now() -> str:
    """Return UTC timestamp as ISO string."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")

def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; a trailing Z is accepted as UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)

def setup_logging(log_path: str, verbose: bool) -> None:
    """Configure logging to write both to a file and to the console."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)sZ %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.FileHandler(log_path, encoding="utf-8"),
            logging.StreamHandler(sys.stdout),
        ],
    )
    logging.info("Logging initialized. log_path=%s verbose=%s", log_path, verbose)

def docker_logs(container: str, tail: int = 120) -> Optional[str]:
    """Fetch last docker logs lines for debugging context (if docker is available)."""
    try:
        out = subprocess.check_output(
            ["docker", "logs", "--tail", str(tail), container],
            stderr=subprocess.STDOUT,
            text=True,
            timeout=5,
        )
        return out
    except (OSError, subprocess.SubprocessError) as e:
        logging.debug("Could not read docker logs for '%s': %s", container, e)
        return None

def validate_body(body: Any, expected_msg: Optional[str], previous_time: Optional[str]) -> Optional[str]:
    """Check a decoded reply against the responder contract. Returns an error or None."""
    if not isinstance(body, dict):
        return "Body is not a JSON object"
    if body.get("ok") is not True:
        return f"Expected ok=true, got {body.get('ok')!r}"

    msg = body.get("msg")
    if not isinstance(msg, str):
        return f"Expected msg to be a string, got {msg!r}"
    if expected_msg is not None and msg != expected_msg:
        return f"Expected msg '{expected_msg}', got '{msg}'"

    stamp = body.get("time")
    if not isinstance(stamp, str):
        return f"Expected time to be a string, got {stamp!r}"
    try:
        parsed = parse_iso(stamp)
    except ValueError:
        return f"time is not ISO-8601: {stamp!r}"
    if parsed.tzinfo is None:
        return f"time has no UTC offset: {stamp!r}"

    if previous_time is not None:
        previous = parse_iso(previous_time)
        if previous.tzinfo is None:
            previous = previous.replace(tzinfo=timezone.utc)
        if parsed < previous:
            return f"time went backwards: {stamp} < {previous_time}"
    return None

def probe(
    url: str,
    timeout_s: float,
    method: str = "GET",
    expected_msg: Optional[str] = None,
    previous_time: Optional[str] = None,
) -> Result:
    """One HTTP probe with contract validation + latency measurement."""
    ts = utc_now()
    t0 = time.perf_counter()

    try:
        r = requests.request(method, url, timeout=timeout_s)
        latency_ms = (time.perf_counter() - t0) * 1000.0
    except requests.RequestException as e:
        latency_ms = (time.perf_counter() - t0) * 1000.0
        return Result(ts, False, None, latency_ms, str(e))

    if r.status_code != 200:
        return Result(ts, False, r.status_code, latency_ms, f"Expected status 200, got {r.status_code}")

    content_type = r.headers.get("Content-Type", "")
    if content_type.split(";")[0].strip() != "application/json":
        return Result(ts, False, r.status_code, latency_ms, f"Unexpected Content-Type: {content_type!r}")

    if method.upper() == "HEAD":
        return Result(ts, True, r.status_code, latency_ms, None)

    try:
        body = r.json()
    except ValueError:
        return Result(ts, False, r.status_code, latency_ms, "Body is not valid JSON")

    error = validate_body(body, expected_msg, previous_time)
    if error:
        return Result(ts, False, r.status_code, latency_ms, error)
    return Result(ts, True, r.status_code, latency_ms, None, body["time"])

def percentile(sorted_vals: List[float], p: float) -> Optional[float]:
    """Nearest-rank percentile on sorted list."""
    if not sorted_vals:
        return None
    idx = int(round((p / 100.0) * (len(sorted_vals) - 1)))
    idx = max(0, min(idx, len(sorted_vals) - 1))
    return float(sorted_vals[idx])

def build_report(
    url: str,
    results: List[Result],
    start_ts: str,
    end_ts: str,
    duration_s: float,
) -> Dict[str, Any]:
    ok_count = sum(1 for r in results if r.ok)
    total = len(results)
    availability = (ok_count / total * 100.0) if total else 0.0

    lat = sorted([r.latency_ms for r in results if r.ok and r.latency_ms is not None])
    p50 = percentile(lat, 50)
    p95 = percentile(lat, 95)

    return {
        "meta": {"tool": "kode_soul_smoke_probe", "version": "1.0"},
        "summary": {
            "url": url,
            "start_ts_utc": start_ts,
            "end_ts_utc": end_ts,
            "duration_s": round(duration_s, 3),
            "total_requests": total,
            "ok_requests": ok_count,
            "fail_requests": total - ok_count,
            "availability_pct": round(availability, 2),
            "p50_latency_ms": round(p50, 2) if p50 is not None else None,
            "p95_latency_ms": round(p95, 2) if p95 is not None else None,
            "min_latency_ms": round(lat[0], 2) if lat else None,
            "max_latency_ms": round(lat[-1], 2) if lat else None,
        },
        "results": [asdict(r) for r in results],
    }

def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Smoke/stability probe for the Kode-Soul JSON responder.")
    ap.add_argument("--url", required=True, help="Target URL, e.g. http://localhost:3000/")
    ap.add_argument("--duration", type=int, default=60, help="How long to test (seconds)")
    ap.add_argument("--interval", type=float, default=1.0, help="Seconds between requests")
    ap.add_argument("--timeout", type=float, default=2.0, help="HTTP timeout in seconds")
    ap.add_argument("--method", default="GET", help="HTTP method to send")
    ap.add_argument("--expected-msg", default=None, help="Expected msg field (optional)")
    ap.add_argument("--container", default=None, help="Docker container to pull logs from on failure")
    ap.add_argument("--log", default="smoke_probe.log", help="Log file path")
    ap.add_argument("--out", default="smoke_report.json", help="Output JSON report")
    ap.add_argument("--verbose", action="store_true", help="Verbose logging")
    args = ap.parse_args(argv)

    setup_logging(args.log, args.verbose)

    start_ts = utc_now()
    start_perf = time.perf_counter()
    end_time = start_perf + max(1, args.duration)

    results: List[Result] = []
    last_time: Optional[str] = None

    i = 0
    while time.perf_counter() < end_time:
        i += 1
        res = probe(args.url, args.timeout, args.method, args.expected_msg, last_time)
        results.append(res)

        if res.ok:
            last_time = res.time or last_time
            logging.info("OK   #%d status=%s latency_ms=%.2f", i, res.status_code, res.latency_ms or -1.0)
        else:
            logging.warning("FAIL #%d status=%s latency_ms=%s err=%s", i, res.status_code, res.latency_ms, res.error)

        time.sleep(max(0.0, args.interval))

    report = build_report(args.url, results, start_ts, utc_now(), time.perf_counter() - start_perf)
    summary = report["summary"]

    if summary["fail_requests"] and args.container:
        report["docker_logs"] = docker_logs(args.container)

    with open(args.out, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2)

    logging.info(
        "Done. total=%d ok=%d fail=%d availability=%.2f%% report=%s",
        summary["total_requests"],
        summary["ok_requests"],
        summary["fail_requests"],
        summary["availability_pct"],
        args.out,
    )
    return 0 if summary["fail_requests"] == 0 else 1

if __name__ == "__main__":
    raise SystemExit(main())
