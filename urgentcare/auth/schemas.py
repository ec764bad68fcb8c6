import enum

from pydantic import BaseModel


class Role(str, enum.Enum):
    PATIENT = "patient"
    PROVIDER = "provider"
    ADMIN = "admin"


class Principal(BaseModel):
    """Authenticated caller as asserted by the identity provider's token."""

    id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
