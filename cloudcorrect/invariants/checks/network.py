"""Network probes — ICMP echo and HTTP 200. No cloud credentials involved."""

from __future__ import annotations

import re
import subprocess
import time
from typing import Any

import httpx

from cloudcorrect.config import settings
from cloudcorrect.invariants.checks.registry import register, verdict
from cloudcorrect.invariants.models import Check, CheckResult, Status
from cloudcorrect.providers.aws import Credentials

_PING_TIME_RE = re.compile(r"time[=<]([\d.]+)\s*ms")


@register("NETWORK", "PING", required=("target",))
def ping(check: Check, params: dict[str, Any], credentials: Credentials | None) -> CheckResult:
    target = str(params["target"])
    wait = settings.ping_timeout
    expected = f"Ping {target} responds"
    if target.startswith("-"):
        return CheckResult(
            status=Status.FAIL, expected=expected, observed="Invalid target",
            reason=f"Ping target must be a host name or address: {target}", data={"target": target},
        )

    t0 = time.perf_counter()
    try:
        proc = subprocess.run(
            ["ping", "-c", "1", "-W", str(wait), target],
            capture_output=True, text=True, timeout=wait + 3,
        )
    except subprocess.TimeoutExpired:
        return CheckResult(
            status=Status.FAIL, expected=expected, observed="No response",
            reason=f"Ping timed out after {wait}s", data={"target": target},
        )
    except OSError as e:
        return CheckResult(
            status=Status.FAIL, expected=expected, observed="Ping unavailable",
            reason=f"Could not run ping: {e}", data={"target": target},
        )

    if proc.returncode != 0:
        return CheckResult(
            status=Status.FAIL, expected=expected, observed="No response",
            reason="Request timed out or host unreachable", data={"target": target},
        )

    m = _PING_TIME_RE.search(proc.stdout)
    latency = float(m.group(1)) if m else round((time.perf_counter() - t0) * 1000, 1)
    return CheckResult(
        status=Status.PASS,
        expected=expected,
        observed=f"Response in {latency}ms",
        reason="ICMP echo received",
        data={"target": target, "latency": latency},
    )


@register("NETWORK", "HTTP_200", required=("url",))
def http_200(check: Check, params: dict[str, Any], credentials: Credentials | None) -> CheckResult:
    url = str(params["url"])
    timeout = settings.http_probe_timeout
    expected = f"HTTP GET {url} returns 200 OK"

    t0 = time.perf_counter()
    try:
        with httpx.Client(timeout=timeout, follow_redirects=True) as client:
            resp = client.get(url)
    except httpx.TimeoutException:
        return CheckResult(
            status=Status.FAIL, expected=expected, observed="Request failed",
            reason=f"Request timed out ({timeout}s)",
            data={"url": url, "status": None, "error": "timeout", "latency": round(timeout * 1000)},
        )
    except Exception as e:
        latency = round((time.perf_counter() - t0) * 1000, 1)
        return CheckResult(
            status=Status.FAIL, expected=expected, observed="Request failed",
            reason=f"{type(e).__name__}: {e}",
            data={"url": url, "status": None, "error": str(e), "latency": latency},
        )

    latency = round((time.perf_counter() - t0) * 1000, 1)
    ok = resp.status_code == 200
    return CheckResult(
        status=verdict(ok),
        expected=expected,
        observed=f"Status {resp.status_code} ({latency}ms)",
        reason="Service returned healthy status" if ok else f"Service returned {resp.status_code}",
        data={
            "url": url,
            "status": resp.status_code,
            "latency": latency,
            "contentType": resp.headers.get("content-type"),
            "server": resp.headers.get("server"),
        },
    )
