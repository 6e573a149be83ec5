import logging
import uuid
from typing import Callable, Generic, Optional, Type, TypeVar

from models import db
from security.errors import check_not_empty
from security.storage import guarded
from utils.clock import utcnow

logger = logging.getLogger(__name__)

M = TypeVar("M")


def new_token(hex_only: bool = False) -> str:
    """
    Opaque random token (UUID4, 122 random bits). Collisions are treated as
    impossible; the unique column would reject one anyway.
    """
    token = uuid.uuid4()
    return token.hex if hex_only else str(token)


class ExpiringTokenStore(Generic[M]):
    """
    Token-keyed records that disappear once expired: a lookup that finds an
    expired record deletes it and reports nothing.
    """

    def __init__(self, model: Type[M], owner_field: str, clock: Callable = utcnow):
        self.model = model
        self.owner_field = owner_field
        self.clock = clock

    @property
    def _owner_column(self):
        return getattr(self.model, self.owner_field)

    @guarded
    def lookup(self, token: str) -> Optional[M]:
        check_not_empty(token, "token")
        record = self.model.query.filter_by(token=token).first()
        return self._discard_if_expired(record)

    @guarded
    def lookup_by_owner(self, key: str) -> Optional[M]:
        check_not_empty(key, self.owner_field)
        record = (
            self.model.query
            .filter(self._owner_column == key)
            .order_by(self.model.expiration.desc())
            .first()
        )
        return self._discard_if_expired(record)

    @guarded
    def insert(self, record: M) -> M:
        check_not_empty(record, "record")
        db.session.add(record)
        db.session.commit()
        return record

    @guarded
    def delete_by_token(self, token: str) -> int:
        check_not_empty(token, "token")
        count = self.model.query.filter_by(token=token).delete(synchronize_session=False)
        db.session.commit()
        return count

    @guarded
    def delete_by_owner(self, key: str) -> int:
        check_not_empty(key, self.owner_field)
        count = self.owner_query(key).delete(synchronize_session=False)
        db.session.commit()
        return count

    def owner_query(self, key: str):
        """Query for every record owned by ``key``, for use inside a larger commit."""
        return self.model.query.filter(self._owner_column == key)

    def _discard_if_expired(self, record: Optional[M]) -> Optional[M]:
        if record is None:
            return None
        if not record.has_expired(self.clock()):
            return record

        logger.debug("discarding expired %s id=%s", self.model.__tablename__, record.id)
        self.model.query.filter_by(id=record.id).delete(synchronize_session=False)
        db.session.commit()
        return None
