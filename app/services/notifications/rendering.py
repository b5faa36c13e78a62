"""Jinja2 rendering of notification emails."""
from pathlib import Path
from typing import Any, Dict, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape

TEMPLATE_DIR = Path(__file__).resolve().parents[2] / "templates" / "email"

SUBJECTS = {
    "share_invitation": "You've been invited to view {list_name}",
    "invitation_forward": "{forwarder_name} has invited you to {event_name}",
    "otp_code": "Your verification code",
    "rsvp_confirmation": "Your RSVP for {event_name}",
}

jinja_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
)


def render_notification(template: str, fields: Dict[str, Any]) -> Tuple[str, str]:
    """
    Render a notification.

    Returns:
        (subject, html_body)
    """
    subject = SUBJECTS[template].format_map(_Defaulting(fields))
    body = jinja_env.get_template(f"{template}.html").render(**fields)
    return subject, body


class _Defaulting(dict):
    """format_map helper that leaves unknown placeholders empty."""

    def __missing__(self, key):
        return ""
