# SQLModel definitions; imported here to ensure metadata is populated for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .user import User  # noqa: F401
from .organization import Organization  # noqa: F401
from .membership import OrganizationMember, UserOrganization  # noqa: F401
from .question import Question  # noqa: F401
