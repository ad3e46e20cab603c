"""Shared helpers for services and blueprints.

get_or_raise:  primary-key lookup raising NotFoundError
parse_date:    lenient date parsing (returns None on bad input)
commit_or_raise: commit, rolling back and raising PersistenceError on failure
paginate:      offset pagination over a query
"""
import logging
from datetime import date, datetime

from sqlalchemy.exc import SQLAlchemyError

from fabtrack.core.exceptions import NotFoundError, PersistenceError
from fabtrack.models import db

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 200


def get_or_raise(model, pk, label=None):
    """Fetch a model instance by primary key or raise NotFoundError."""
    obj = db.session.get(model, pk) if pk is not None else None
    if obj is None:
        raise NotFoundError(resource=label or model.__name__, resource_id=pk)
    return obj


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def commit_or_raise(operation):
    """Commit the session; on store failure roll back and raise PersistenceError.

    Usage::

        db.session.add(obj)
        commit_or_raise("create_project")
    """
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Store write failed: %s", operation)
        raise PersistenceError(operation, exc) from exc


def normalise_page(page, page_size):
    """Clamp page/page_size to sane values."""
    try:
        page = max(int(page or 1), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        page_size = min(max(int(page_size or DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
    except (TypeError, ValueError):
        page_size = DEFAULT_PAGE_SIZE
    return page, page_size


def paginate(query, page=1, page_size=DEFAULT_PAGE_SIZE):
    """Apply offset pagination to an ordered query.

    Returns:
        (items_list, total_count, page, page_size)
    """
    page, page_size = normalise_page(page, page_size)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return items, total, page, page_size
