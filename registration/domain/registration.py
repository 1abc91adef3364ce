"""Registration input parsing and normalization."""

import urllib.parse
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone


class InvalidRegistration(ValueError):
    """Raised when a registration form is missing or carries unusable fields."""


@dataclass
class Registration:
    """A normalized registration ready to be stored."""

    name: str
    email: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    subscribed_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "email": self.email}


def normalize_email(email: str) -> str:
    """Trim surrounding whitespace and lowercase the address."""
    return email.strip().lower()


def _single_field(form: dict[str, list[str]], name: str) -> str:
    values = form.get(name)
    if not values:
        raise InvalidRegistration(f"missing field: {name}")
    value = values[0].strip()
    if not value:
        raise InvalidRegistration(f"empty field: {name}")
    return value


def parse_registration_form(body: bytes) -> Registration:
    """Decode an urlencoded form body into a normalized registration."""
    try:
        form = urllib.parse.parse_qs(
            body.decode("utf-8"), keep_blank_values=True, strict_parsing=False
        )
    except UnicodeDecodeError as exc:
        raise InvalidRegistration("form body is not valid UTF-8") from exc

    name = _single_field(form, "name")
    email = normalize_email(_single_field(form, "email"))
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise InvalidRegistration("invalid email address")
    return Registration(name=name, email=email)
