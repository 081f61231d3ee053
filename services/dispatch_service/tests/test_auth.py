import datetime
import uuid
from collections.abc import Callable
from unittest.mock import MagicMock

import pytest

from shared.db.models import Profile

from dispatch_service.auth import authenticate, create_access_token, decode_access_token
from dispatch_service.config import AuthConfig
from dispatch_service.errors import Unauthorized


class TestAccessTokens:
    def test_round_trip(self, auth_config: AuthConfig) -> None:
        user_id = uuid.uuid4()
        token = create_access_token(user_id, auth_config)
        assert decode_access_token(token, auth_config) == user_id

    def test_expired_token(self, auth_config: AuthConfig) -> None:
        token = create_access_token(
            uuid.uuid4(), auth_config, expires_delta=datetime.timedelta(seconds=-10)
        )
        with pytest.raises(Unauthorized):
            decode_access_token(token, auth_config)

    def test_wrong_secret(self, auth_config: AuthConfig) -> None:
        token = create_access_token(uuid.uuid4(), AuthConfig(jwt_secret="other"))
        with pytest.raises(Unauthorized):
            decode_access_token(token, auth_config)

    def test_audience_enforced_when_configured(self) -> None:
        config = AuthConfig(jwt_secret="s", jwt_audience="announcements")
        token = create_access_token(
            uuid.uuid4(), AuthConfig(jwt_secret="s", jwt_audience="other-app")
        )
        with pytest.raises(Unauthorized):
            decode_access_token(token, config)


class TestAuthenticate:
    def test_valid_bearer(
        self,
        auth_config: AuthConfig,
        session_factory: MagicMock,
        make_profile: Callable[..., Profile],
    ) -> None:
        user = make_profile()
        header = f"Bearer {create_access_token(user.id, auth_config)}"

        assert authenticate(header, auth_config, session_factory) == user.id

    @pytest.mark.parametrize("header", [None, "", "Token abc", "Bearer "])
    def test_malformed_header(
        self, header: str | None, auth_config: AuthConfig, session_factory: MagicMock
    ) -> None:
        with pytest.raises(Unauthorized):
            authenticate(header, auth_config, session_factory)

    def test_unknown_user(
        self, auth_config: AuthConfig, session_factory: MagicMock
    ) -> None:
        header = f"Bearer {create_access_token(uuid.uuid4(), auth_config)}"
        with pytest.raises(Unauthorized):
            authenticate(header, auth_config, session_factory)
