import pytest
from jinja2 import UndefinedError

from shared.db.models import Message

from dispatch_service.renderer import (
    format_sms_body,
    format_verification_text,
    render_template,
)


class TestFormatSmsBody:
    def test_with_link(self) -> None:
        message = Message(
            title="Snow day", body="School is closed.", link="https://school.test/1"
        )
        assert format_sms_body(message) == (
            "Snow day\n\nSchool is closed.\n\nhttps://school.test/1"
        )

    def test_without_link(self) -> None:
        message = Message(title="Snow day", body="School is closed.", link=None)
        assert format_sms_body(message) == "Snow day\n\nSchool is closed."

    def test_no_html_escaping(self) -> None:
        message = Message(title="Q&A", body="<b>Bring</b> pens", link=None)
        assert format_sms_body(message) == "Q&A\n\n<b>Bring</b> pens"


class TestRenderTemplate:
    def test_verification_text(self) -> None:
        assert format_verification_text("004211") == "Your verification code is: 004211"

    def test_missing_variable_raises(self) -> None:
        with pytest.raises(UndefinedError):
            render_template("Hello {{ name }}", {})
