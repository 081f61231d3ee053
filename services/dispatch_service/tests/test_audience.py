import uuid
from collections.abc import Callable

import pytest
from sqlalchemy.orm import Session

from shared.db.models import Profile
from shared.db.repositories import RecipientRepository
from shared.enums import AudienceType, Channel, DeliveryStatus, Role

from dispatch_service.audience import create_message, resolve_audience
from dispatch_service.errors import Forbidden, InvalidRequest


class TestResolveAudience:
    def test_all(
        self, db_session: Session, make_profile: Callable[..., Profile]
    ) -> None:
        a, b = make_profile(), make_profile(role=Role.TEACHER)

        ids = resolve_audience(db_session, AudienceType.ALL, None)

        assert {a.id, b.id} <= set(ids)

    def test_role(
        self, db_session: Session, make_profile: Callable[..., Profile]
    ) -> None:
        parent = make_profile(role=Role.PARENT)
        teacher = make_profile(role=Role.TEACHER)

        ids = resolve_audience(db_session, AudienceType.ROLE, {"value": "parent"})

        assert parent.id in ids
        assert teacher.id not in ids

    def test_unknown_role_rejected(self, db_session: Session) -> None:
        with pytest.raises(InvalidRequest) as exc_info:
            resolve_audience(db_session, AudienceType.ROLE, {"value": "janitor"})
        assert exc_info.value.extra["supported"] == ["admin", "parent", "teacher"]

    def test_individual_drops_unknown_ids(
        self, db_session: Session, make_profile: Callable[..., Profile]
    ) -> None:
        known = make_profile()

        ids = resolve_audience(
            db_session,
            AudienceType.INDIVIDUAL,
            {"user_ids": [str(known.id), str(uuid.uuid4())]},
        )

        assert ids == [known.id]

    def test_individual_bad_id(self, db_session: Session) -> None:
        with pytest.raises(InvalidRequest):
            resolve_audience(
                db_session, AudienceType.INDIVIDUAL, {"user_ids": ["nope"]}
            )

    @pytest.mark.parametrize("value", [["parent"], {"role": "parent"}, 3])
    def test_non_string_role_rejected(self, db_session: Session, value) -> None:
        with pytest.raises(InvalidRequest):
            resolve_audience(db_session, AudienceType.ROLE, {"value": value})

    @pytest.mark.parametrize("user_ids", [7, "not-a-list", {"id": "x"}])
    def test_individual_ids_must_be_a_list(
        self, db_session: Session, user_ids
    ) -> None:
        with pytest.raises(InvalidRequest):
            resolve_audience(
                db_session, AudienceType.INDIVIDUAL, {"user_ids": user_ids}
            )

    def test_class_not_supported(self, db_session: Session) -> None:
        with pytest.raises(InvalidRequest):
            resolve_audience(db_session, AudienceType.CLASS, {"value": "5B"})


class TestCreateMessage:
    def test_fans_out_pending_recipients(
        self,
        db_session: Session,
        teacher: Profile,
        make_profile: Callable[..., Profile],
    ) -> None:
        p1, p2 = make_profile(), make_profile()

        message, count = create_message(
            db_session,
            sender_id=teacher.id,
            title="Picture day",
            body="Wear the uniform.",
            link=None,
            audience_type=AudienceType.INDIVIDUAL,
            audience_filter={"user_ids": [str(p1.id), str(p2.id)]},
            channels=[Channel.SMS, Channel.PUSH],
        )

        assert count == 2
        assert message.sent_at is not None
        recipients = RecipientRepository(db_session).list_for_message(message.id)
        assert {r.user_id for r in recipients} == {p1.id, p2.id}
        for r in recipients:
            assert r.status == DeliveryStatus.PENDING
            assert r.channels_attempted == ["sms", "push"]

    def test_parent_cannot_send(
        self, db_session: Session, make_profile: Callable[..., Profile]
    ) -> None:
        parent = make_profile(role=Role.PARENT)

        with pytest.raises(Forbidden):
            create_message(
                db_session,
                sender_id=parent.id,
                title="Hi",
                body="Hello",
                link=None,
                audience_type=AudienceType.ALL,
                audience_filter=None,
                channels=[Channel.SMS],
            )

    def test_channels_required(
        self, db_session: Session, teacher: Profile
    ) -> None:
        with pytest.raises(InvalidRequest):
            create_message(
                db_session,
                sender_id=teacher.id,
                title="Hi",
                body="Hello",
                link=None,
                audience_type=AudienceType.ALL,
                audience_filter=None,
                channels=[],
            )
