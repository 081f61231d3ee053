"""Plain-text rendering for outbound SMS content."""

from typing import Any

from jinja2 import StrictUndefined
from jinja2.sandbox import SandboxedEnvironment

from shared.db.models import Message

# SMS is plain text: no HTML escaping.
_env = SandboxedEnvironment(
    autoescape=False,
    undefined=StrictUndefined,
    keep_trailing_newline=False,
)

SMS_BODY_TEMPLATE = (
    "{{ title }}\n\n{{ body }}{% if link %}\n\n{{ link }}{% endif %}"
)
VERIFICATION_TEMPLATE = "Your verification code is: {{ code }}"


def render_template(template_str: str, context: dict[str, Any]) -> str:
    """Render a Jinja2 template string with the given context.

    StrictUndefined makes a missing variable raise instead of rendering
    an empty string into a message someone will receive.
    """
    template = _env.from_string(template_str)
    return template.render(context)


def format_sms_body(message: Message) -> str:
    """``{title}\\n\\n{body}\\n\\n{link}``, without the link part when unset."""
    return render_template(
        SMS_BODY_TEMPLATE,
        {"title": message.title, "body": message.body, "link": message.link},
    )


def format_verification_text(code: str) -> str:
    return render_template(VERIFICATION_TEMPLATE, {"code": code})
