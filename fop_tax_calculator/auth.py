"""Local identity stand-in supplying a stable user key and profile fields."""

from dataclasses import dataclass, replace
from uuid import NAMESPACE_URL, uuid5

from fop_tax_calculator.config import UserProfile


@dataclass(frozen=True, slots=True)
class Identity:
    """Signed-in user as supplied by the identity provider."""

    user_id: str
    email: str
    name: str | None = None
    photo_url: str | None = None


def identity_from_email(email: str, name: str | None = None) -> Identity:
    """Return identity whose user key is stable for the email address."""
    normalized = email.strip().casefold()
    return Identity(
        user_id=uuid5(NAMESPACE_URL, f"mailto:{normalized}").hex,
        email=normalized,
        name=(name or "").strip() or None,
    )


def build_user_profile(identity: Identity, stored: UserProfile | None = None) -> UserProfile:
    """Merge identity fields into stored profile, falling back to defaults."""
    profile = stored or UserProfile()
    default_name = UserProfile().name
    name = profile.name if stored and profile.name != default_name else None
    return replace(
        profile,
        name=name or identity.name or profile.name,
        email=identity.email or profile.email,
        photo_url=identity.photo_url or profile.photo_url,
    )
