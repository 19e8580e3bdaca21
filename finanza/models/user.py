"""User and preference models."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from finanza.models.ledger import new_entity_id
from finanza.models.rates import Currency, Theme


class User(BaseModel):
    """
    A registered user.

    The password is only ever held as a bcrypt hash.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_entity_id)
    username: str = Field(..., min_length=1, max_length=50)
    email: str = Field(default="", max_length=200)
    password_hash: str = Field(..., repr=False)
    is_verified: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def public(self) -> "User":
        """Copy suitable for the session marker (no password hash)."""
        return self.model_copy(update={"password_hash": ""})


class UserPreferences(BaseModel):
    """Per-installation view settings; outside the ledger."""

    theme: Theme = Theme.LIGHT
    display_currency: Currency = Currency.TRY
    language: str = "en"
