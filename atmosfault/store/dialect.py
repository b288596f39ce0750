"""Dialect-specific INSERT ... ON CONFLICT support."""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from atmosfault.exceptions import StorageError

_INSERTS = {
    'postgresql': postgresql.insert,
    'sqlite': sqlite.insert,
}


def upsert_insert(session: Session, model):
    """
    Return an INSERT construct for model that supports on_conflict_do_update.

    Both PostgreSQL and SQLite expose the same ON CONFLICT API, which is all
    the stores need; other backends are rejected up front.
    """
    dialect = session.get_bind().dialect.name
    try:
        return _INSERTS[dialect](model)
    except KeyError:
        raise StorageError(f'Upsert not supported on {dialect} databases') from None
