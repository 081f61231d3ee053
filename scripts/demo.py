#!/usr/bin/env python3
"""Demo: author an announcement and dispatch it over push and SMS.

Seeds a teacher and a parent straight into the database, then drives the
HTTP API the way the app would. With no provider credentials configured the
service runs in dev mode, so nothing leaves the machine.

Requires PostgreSQL (migrated), Redis, Kafka and the dispatch API running.

Usage:
    python scripts/demo.py [--api-url URL]
"""

import argparse
import sys
import uuid

import httpx

from shared.config import PostgresConfig
from shared.db.base import create_db_engine, create_session_factory
from shared.db.models import AuthUser, Profile
from shared.enums import Role

from dispatch_service.auth import create_access_token
from dispatch_service.config import AuthConfig

PARENT_PHONE = "+15551230001"


def _seed_user(session_factory, role: str) -> uuid.UUID:
    with session_factory() as session:
        user = AuthUser(email=f"{role}-{uuid.uuid4().hex[:8]}@example.com")
        session.add(user)
        session.flush()
        session.add(Profile(id=user.id, email=user.email, role=role))
        session.commit()
        return user.id


def _check(resp: httpx.Response, step: str) -> dict:
    body = resp.json()
    if resp.is_error:
        print(f"  {step:24s} -> ERROR {resp.status_code}: {body}")
        sys.exit(1)
    print(f"  {step:24s} -> {resp.status_code} {body}")
    return body


def main() -> None:
    parser = argparse.ArgumentParser(description="Run a demo dispatch")
    parser.add_argument(
        "--api-url",
        default="http://localhost:8000",
        help="Dispatch API base URL (default: http://localhost:8000)",
    )
    args = parser.parse_args()

    engine = create_db_engine(PostgresConfig().dsn)
    session_factory = create_session_factory(engine)
    teacher_id = _seed_user(session_factory, Role.TEACHER)
    parent_id = _seed_user(session_factory, Role.PARENT)
    engine.dispose()

    auth_config = AuthConfig()
    teacher = {"Authorization": f"Bearer {create_access_token(teacher_id, auth_config)}"}
    parent = {"Authorization": f"Bearer {create_access_token(parent_id, auth_config)}"}

    with httpx.Client(base_url=args.api_url, timeout=10.0) as client:
        try:
            resp = client.get("/health")
        except httpx.ConnectError:
            print(f"Cannot connect to {args.api_url}")
            sys.exit(1)

        if resp.status_code != 200:
            print(f"API unhealthy: {resp.text}")
            sys.exit(1)

        print(f"API healthy at {args.api_url}\n")

        _check(
            client.post("/push-tokens", json={"token": "demo-device-token"}, headers=parent),
            "register push token",
        )
        issued = _check(
            client.post(
                "/verification/code", json={"phoneNumber": PARENT_PHONE}, headers=parent
            ),
            "request code",
        )
        if not issued.get("devMode"):
            print("\nSMS provider is live; enter the code from the phone to continue.")
            code = input("code: ").strip()
        else:
            code = issued["code"]
        _check(
            client.post("/verification/verify", json={"code": code}, headers=parent),
            "verify phone",
        )

        created = _check(
            client.post(
                "/messages",
                json={
                    "title": "Early pickup",
                    "body": "School closes at noon on Friday.",
                    "audienceType": "individual",
                    "audienceFilter": {"user_ids": [str(parent_id)]},
                    "channels": ["push", "sms"],
                },
                headers=teacher,
            ),
            "create message",
        )
        message_id = created["messageId"]

        for channel in ("push", "sms"):
            _check(
                client.post(
                    f"/dispatch/{channel}", json={"messageId": message_id}, headers=teacher
                ),
                f"dispatch {channel}",
            )

        _check(
            client.get(f"/messages/{message_id}/deliveries", headers=teacher),
            "delivery summary",
        )

    print("\nInspect the log:")
    print("  SELECT channel, status, error_message FROM delivery_logs")
    print(f"    WHERE message_id = '{message_id}' ORDER BY id;")


if __name__ == "__main__":
    main()
