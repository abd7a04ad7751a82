# investment_manager/storage.py
"""
Per-entity storage access.

Services never touch ``db.session`` directly for single-row work; they go
through a Repository so that every write is one commit and every storage
error comes back as a taxonomy error (Conflict / DownstreamFailure) with the
driver message attached.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from investment_manager.errors import Conflict, DownstreamFailure, NotFound
from investment_manager.extensions import db

log = logging.getLogger(__name__)

M = TypeVar("M")


def commit() -> None:
    """Commit the current unit of work, translating storage failures."""
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise Conflict("Record conflicts with an existing entry", details=[str(e.orig)]) from e
    except SQLAlchemyError as e:
        db.session.rollback()
        log.exception("storage commit failed")
        raise DownstreamFailure(f"Storage error: {e}") from e


class Repository(Generic[M]):
    def __init__(self, model: Type[M], label: Optional[str] = None):
        self.model = model
        self.label = label or model.__name__

    # ---------- reads ----------
    def find(self, order_by=None, **filters) -> List[M]:
        try:
            q = self.model.query
            for key, value in filters.items():
                if value is not None:
                    q = q.filter(getattr(self.model, key) == value)
            if order_by is not None:
                q = q.order_by(order_by)
            else:
                q = q.order_by(self.model.id.asc())
            return q.all()
        except SQLAlchemyError as e:
            raise DownstreamFailure(f"Error finding {self.label}: {e}") from e

    def find_one(self, **filters) -> Optional[M]:
        try:
            return self.model.query.filter_by(**filters).first()
        except SQLAlchemyError as e:
            raise DownstreamFailure(f"Error finding {self.label}: {e}") from e

    def find_by_id(self, id_: Any) -> Optional[M]:
        try:
            return db.session.get(self.model, id_)
        except SQLAlchemyError as e:
            raise DownstreamFailure(f"Error finding {self.label}: {e}") from e

    def get_or_404(self, id_: Any) -> M:
        obj = self.find_by_id(id_)
        if obj is None:
            raise NotFound(f"{self.label} not found")
        return obj

    # ---------- writes ----------
    def create(self, data: Dict[str, Any]) -> M:
        obj = self.model(**data)
        db.session.add(obj)
        commit()
        return obj

    def find_by_id_and_update(self, id_: Any, patch: Dict[str, Any]) -> M:
        obj = self.get_or_404(id_)
        for key, value in patch.items():
            setattr(obj, key, value)
        commit()
        return obj

    def find_by_id_and_delete(self, id_: Any) -> M:
        obj = self.get_or_404(id_)
        db.session.delete(obj)
        commit()
        return obj

    def delete(self, obj: M) -> None:
        db.session.delete(obj)
        commit()
