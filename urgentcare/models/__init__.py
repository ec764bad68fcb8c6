# urgentcare/models/__init__.py
from urgentcare.db.session import Base, engine

# Import model modules so SQLAlchemy registers all mappers.
# Important: we import the modules (not the classes) to avoid circular imports.
from . import catalog  # noqa: F401
from . import care_request  # noqa: F401


def init_db(bind=None) -> None:
    """Create tables if they don't exist."""
    Base.metadata.create_all(bind=bind or engine)
