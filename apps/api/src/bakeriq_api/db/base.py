from enum import Enum

from sqlalchemy.orm import DeclarativeBase, declared_attr


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models with automatic table naming."""

    @declared_attr.directive
    def __tablename__(cls) -> str:  # noqa: N805
        return cls.__name__.lower()


def enum_values(enum: type[Enum]) -> list[str]:
    """Persist enum members by value so stored labels match the API strings."""

    return [member.value for member in enum]


# Import models to ensure metadata registration for Alembic
try:  # pragma: no cover - import side effects only
    import bakeriq_api.models  # noqa: F401,WPS433
except ImportError:  # pragma: no cover - circular import while models load
    pass
