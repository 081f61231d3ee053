import datetime
import logging
from typing import Any, TypeVar
from uuid import UUID

from flask import Blueprint, Response, current_app, jsonify, request
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session, sessionmaker

from shared.db.base import utcnow
from shared.db.repositories import (
    DeliveryLogRepository,
    MessageRepository,
    RecipientRepository,
)
from shared.enums import Channel

from dispatch_service.audience import create_message
from dispatch_service.auth import authenticate
from dispatch_service.config import AuthConfig
from dispatch_service.dispatcher import Dispatcher
from dispatch_service.errors import (
    DispatchError,
    Forbidden,
    InvalidRequest,
    ResourceNotFound,
)
from dispatch_service.schemas import (
    CreateMessageRequest,
    DispatchRequest,
    IssueCodeRequest,
    RegisterPushTokenRequest,
    ValidateCodeRequest,
)
from dispatch_service.tokens import TokenLifecycleManager
from dispatch_service.verification import VerificationService

logger = logging.getLogger(__name__)

bp = Blueprint("dispatch", __name__)

_Body = TypeVar("_Body", bound=BaseModel)


def _error(message: str, status: int, **extra: Any) -> tuple[Response, int]:
    body: dict[str, Any] = {"error": message}
    body.update(extra)
    return jsonify(body), status


@bp.app_errorhandler(DispatchError)
def _handle_dispatch_error(exc: DispatchError) -> tuple[Response, int]:
    return _error(exc.message, exc.status_code, **exc.extra)


def _session_factory() -> sessionmaker[Session]:
    return current_app.extensions["session_factory"]


def _dispatcher() -> Dispatcher:
    return current_app.extensions["dispatcher"]


def _verification() -> VerificationService:
    return current_app.extensions["verification"]


def _current_user() -> UUID:
    auth_config: AuthConfig = current_app.extensions["auth_config"]
    return authenticate(
        request.headers.get("Authorization"), auth_config, _session_factory()
    )


def _parse(model: type[_Body]) -> _Body:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise InvalidRequest("Request body must be a JSON object")
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        raise InvalidRequest(
            "Request validation failed",
            details=exc.errors(include_url=False, include_context=False),
        ) from exc


def _run_dispatch(channel: str) -> tuple[Response, int]:
    user_id = _current_user()
    body = _parse(DispatchRequest)

    summary = _dispatcher().dispatch(body.message_id, channel)
    logger.info(
        "Dispatch requested",
        extra={
            "user_id": str(user_id),
            "message_id": str(body.message_id),
            "channel": channel,
        },
    )
    return jsonify({
        "message": f"{channel.upper()} delivery processed",
        **summary.as_dict(),
    }), 200


@bp.post("/dispatch/sms")
def dispatch_sms() -> tuple[Response, int]:
    return _run_dispatch(Channel.SMS)


@bp.post("/dispatch/push")
def dispatch_push() -> tuple[Response, int]:
    return _run_dispatch(Channel.PUSH)


@bp.post("/dispatch/email")
def dispatch_email() -> tuple[Response, int]:
    return _run_dispatch(Channel.EMAIL)


@bp.post("/verification/code")
def issue_code() -> tuple[Response, int]:
    user_id = _current_user()
    body = _parse(IssueCodeRequest)

    result = _verification().issue_code(user_id, body.phone_number)
    if result.dev_mode:
        return jsonify({
            "message": "Dev mode: SMS provider not configured",
            "devMode": True,
            "code": result.code,
        }), 200
    return jsonify({"message": "Verification code sent"}), 200


@bp.post("/verification/verify")
def validate_code() -> tuple[Response, int]:
    user_id = _current_user()
    body = _parse(ValidateCodeRequest)

    _verification().validate_code(user_id, body.code)
    return jsonify({"message": "Phone verified successfully"}), 200


@bp.post("/messages")
def post_message() -> tuple[Response, int]:
    user_id = _current_user()
    body = _parse(CreateMessageRequest)

    scheduled_at = body.scheduled_at
    if scheduled_at is not None and scheduled_at.tzinfo is None:
        scheduled_at = scheduled_at.replace(tzinfo=datetime.UTC)

    with _session_factory()() as session:
        message, recipient_count = create_message(
            session,
            sender_id=user_id,
            title=body.title,
            body=body.body,
            link=body.link,
            audience_type=body.audience_type,
            audience_filter=body.audience_filter,
            channels=list(dict.fromkeys(body.channels)),
            scheduled_at=scheduled_at,
            recurrence=body.recurrence,
        )
        session.commit()
        message_id = message.id

    return jsonify({
        "messageId": str(message_id),
        "recipients": recipient_count,
    }), 201


@bp.get("/messages/<uuid:message_id>/deliveries")
def delivery_summary(message_id: UUID) -> tuple[Response, int]:
    _current_user()

    with _session_factory()() as session:
        message = MessageRepository(session).get_by_id(message_id)
        if message is None:
            raise ResourceNotFound("Message not found", messageId=str(message_id))

        recipients = RecipientRepository(session).list_for_message(message_id)
        recipient_counts: dict[str, int] = {}
        for r in recipients:
            recipient_counts[r.status] = recipient_counts.get(r.status, 0) + 1
        channels = DeliveryLogRepository(session).summary_for_message(message_id)

    return jsonify({
        "messageId": str(message_id),
        "recipients": recipient_counts,
        "channels": channels,
    }), 200


@bp.post("/push-tokens")
def register_push_token() -> tuple[Response, int]:
    user_id = _current_user()
    body = _parse(RegisterPushTokenRequest)

    with _session_factory()() as session:
        created = TokenLifecycleManager(session).register(user_id, body.token)
        session.commit()

    return jsonify({"created": created}), 201 if created else 200


@bp.post("/recipients/<uuid:recipient_id>/read")
def mark_read(recipient_id: UUID) -> tuple[Response, int]:
    user_id = _current_user()

    with _session_factory()() as session:
        repo = RecipientRepository(session)
        recipient = repo.get_by_id(recipient_id)
        if recipient is None:
            raise ResourceNotFound(
                "Recipient not found", recipientId=str(recipient_id)
            )
        if recipient.user_id != user_id:
            raise Forbidden("Only the recipient can mark a message read")
        repo.mark_read(recipient, utcnow())
        session.commit()
        read_at = recipient.read_at

    return jsonify({"readAt": read_at.isoformat() if read_at else None}), 200


@bp.get("/health")
def health() -> tuple[Response, int]:
    return jsonify({"status": "healthy"}), 200
