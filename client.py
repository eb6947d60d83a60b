#!/usr/bin/env python3
"""
Command-line client for the Lead Report Generator API.

Submits an email, then polls the report status until it completes or fails.
"""

import argparse
import asyncio
import sys

import httpx
from loguru import logger

from tools.poller import poll_report


async def run(base_url: str, email: str, interval: float, max_attempts: int) -> int:
    async with httpx.AsyncClient(timeout=10) as client:
        response = await client.post(f"{base_url}/reports", json={"email": email})
        if response.status_code != 202:
            print(f"❌ Report request rejected ({response.status_code}): {response.text}")
            return 1

        report_id = response.json()["id"]
        print(f"⏳ Generating report {report_id} for {email}...")

        outcome = await poll_report(base_url, report_id, interval=interval,
                                    max_attempts=max_attempts, client=client)

    if not outcome.ok:
        print(f"❌ Report status unavailable: {outcome.error}")
        return 1

    payload = outcome.value
    if payload["status"] == "failed":
        print(f"❌ Report generation failed: {payload.get('error') or 'An unexpected error occurred'}")
        return 1

    print(f"✅ Report ready after {outcome.attempts} status check(s)\n")
    print(payload["data"]["report"])
    return 0


def main():
    parser = argparse.ArgumentParser(description="Generate a lead report for an email address")
    parser.add_argument("email")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--interval", type=float, default=2.0, help="seconds between status checks")
    parser.add_argument("--max-attempts", type=int, default=150)
    args = parser.parse_args()

    logger.remove()
    logger.add(sys.stderr, level="WARNING")

    return asyncio.run(run(args.base_url.rstrip("/"), args.email, args.interval, args.max_attempts))


if __name__ == "__main__":
    sys.exit(main())
