#!/usr/bin/env python3
"""End-to-end smoke run of the announcement API against a deployed backend.

Creates a throwaway announcement as a teacher, checks that a student sees,
acknowledges and dismisses it, then deletes it.
"""

from __future__ import annotations

import argparse
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx


@dataclass
class SmokeContext:
    base_url: str
    api_prefix: str
    retries: int
    retry_delay_seconds: float


def _api_url(ctx: SmokeContext, path: str) -> str:
    return f"{ctx.base_url}{ctx.api_prefix}{path}"


def _step(name: str) -> None:
    print(f"\n==> {name}")


def _request(
    client: httpx.Client,
    ctx: SmokeContext,
    method: str,
    url: str,
    *,
    step_name: str,
    expected_status: int = 200,
    **kwargs: Any,
) -> httpx.Response:
    for attempt in range(ctx.retries + 1):
        try:
            resp = client.request(method, url, **kwargs)
        except (httpx.ConnectTimeout, httpx.ReadTimeout, httpx.ConnectError) as exc:
            if attempt >= ctx.retries:
                raise RuntimeError(f"{step_name} request failed: {exc}") from exc
            print(f"{step_name}: transient error ({exc}), retrying ({attempt + 1}/{ctx.retries})...")
            time.sleep(ctx.retry_delay_seconds)
            continue
        if resp.status_code in {502, 503, 504} and attempt < ctx.retries:
            print(f"{step_name}: transient HTTP {resp.status_code}, retrying ({attempt + 1}/{ctx.retries})...")
            time.sleep(ctx.retry_delay_seconds)
            continue
        if resp.status_code != expected_status:
            raise RuntimeError(
                f"{step_name} failed: expected HTTP {expected_status}, got {resp.status_code}. Body: {resp.text}"
            )
        return resp
    raise RuntimeError(f"{step_name} failed unexpectedly.")


def run_smoke(
    *,
    base_url: str,
    api_prefix: str,
    teacher_token: str,
    student_token: str,
    timeout_seconds: float,
    verify_tls: bool,
    retries: int,
    retry_delay_seconds: float,
    keep_announcement: bool,
) -> None:
    ctx = SmokeContext(
        base_url=base_url.rstrip("/"),
        api_prefix="/" + api_prefix.strip("/"),
        retries=retries,
        retry_delay_seconds=retry_delay_seconds,
    )
    teacher = {"Authorization": f"Bearer {teacher_token}"}
    student = {"Authorization": f"Bearer {student_token}"}
    now = datetime.now(timezone.utc)

    with httpx.Client(timeout=timeout_seconds, verify=verify_tls) as client:
        _step("Health checks")
        _request(client, ctx, "GET", f"{ctx.base_url}/healthz", step_name="GET /healthz")
        _request(client, ctx, "GET", f"{ctx.base_url}/readyz", step_name="GET /readyz")

        _step("Create announcement")
        created = _request(
            client,
            ctx,
            "POST",
            _api_url(ctx, "/announcements"),
            step_name="POST /announcements",
            expected_status=201,
            headers=teacher,
            json={
                "title": f"Smoke check {int(time.time())}",
                "content": "Automated smoke check, safe to ignore.",
                "endsAt": (now + timedelta(minutes=10)).isoformat(),
                "audience": [{"audienceType": "everyone"}],
                "metadata": {"smoke": True},
            },
        ).json()
        announcement_id = created["id"]
        if created["status"] != "published":
            raise RuntimeError(f"Expected a published announcement, got {created['status']}")
        print(f"Created announcement {announcement_id}")

        try:
            _step("Student listing")
            listing = _request(
                client,
                ctx,
                "GET",
                _api_url(ctx, "/announcements"),
                step_name="GET /announcements",
                headers=student,
                params={"search": created["title"]},
            ).json()
            if announcement_id not in {item["id"] for item in listing["items"]}:
                raise RuntimeError("Student listing does not include the smoke announcement")
            print("Student can see the announcement")

            for action in ("acknowledge", "dismiss"):
                _step(action.capitalize())
                _request(
                    client,
                    ctx,
                    "POST",
                    _api_url(ctx, f"/announcements/{announcement_id}/{action}"),
                    step_name=f"POST /announcements/:id/{action}",
                    headers=student,
                )
        finally:
            if not keep_announcement:
                _step("Cleanup")
                _request(
                    client,
                    ctx,
                    "DELETE",
                    _api_url(ctx, f"/announcements/{announcement_id}"),
                    step_name="DELETE /announcements/:id",
                    headers=teacher,
                )

    print("\nSUCCESS: announcement smoke checks passed.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run announcement API smoke checks.")
    parser.add_argument("--base-url", required=True, help="Backend base URL")
    parser.add_argument("--api-prefix", default="/api/v1", help="API prefix (default: /api/v1)")
    parser.add_argument("--teacher-token", required=True, help="Access token of a teacher account")
    parser.add_argument("--student-token", required=True, help="Access token of a student account")
    parser.add_argument("--timeout", type=float, default=20.0, help="HTTP timeout in seconds")
    parser.add_argument("--retries", type=int, default=3, help="Retries for transient network/5xx errors")
    parser.add_argument("--retry-delay", type=float, default=5.0, help="Delay between retries in seconds")
    parser.add_argument("--insecure", action="store_true", help="Disable TLS certificate verification")
    parser.add_argument("--keep", action="store_true", help="Do not delete the smoke announcement")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    run_smoke(
        base_url=args.base_url,
        api_prefix=args.api_prefix,
        teacher_token=args.teacher_token,
        student_token=args.student_token,
        timeout_seconds=args.timeout,
        verify_tls=not args.insecure,
        retries=max(0, args.retries),
        retry_delay_seconds=max(0.0, args.retry_delay),
        keep_announcement=args.keep,
    )


if __name__ == "__main__":
    main()
