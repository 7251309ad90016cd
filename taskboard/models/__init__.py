# Models package — import all models here so Alembic can discover them.

from taskboard.models.user import User  # noqa: F401
from taskboard.models.board import Board, BoardColumn, Card  # noqa: F401
from taskboard.models.audit import AuditEvent  # noqa: F401
