"""
Tenant store: one record per shop, every write is an upsert.

Upserts for the same shop are serialized in-process with a per-shop lock;
different shops never contend. SQLAlchemy failures are rolled back and
surfaced as StoreUnavailable.
"""
import logging
import threading
from collections import defaultdict

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import StoreUnavailable, UnknownShop
from app.models import Tenant

logger = logging.getLogger(__name__)

UPSERT_FIELDS = frozenset({
    "access_token",
    "scope",
    "min_order_value",
    "surcharge",
    "surcharge_label",
})

_locks_guard = threading.Lock()
_shop_locks: dict[str, threading.Lock] = defaultdict(threading.Lock)


def _lock_for(shop_id: str) -> threading.Lock:
    with _locks_guard:
        return _shop_locks[shop_id]


class TenantStore:
    """Data access for Tenant records, bound to one session."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_shop_id(self, shop_id: str) -> Tenant | None:
        try:
            return self.db.get(Tenant, shop_id)
        except SQLAlchemyError as e:
            self._fail("lookup", e)

    def get(self, shop_id: str) -> Tenant:
        tenant = self.find_by_shop_id(shop_id)
        if tenant is None:
            raise UnknownShop(shop_id)
        return tenant

    def list_all(self) -> list[Tenant]:
        try:
            return self.db.query(Tenant).order_by(Tenant.shop_id).all()
        except SQLAlchemyError as e:
            self._fail("list", e)

    def upsert(self, shop_id: str, **fields) -> Tenant:
        """Create the tenant or merge `fields` into it; fields not supplied are left untouched."""
        unknown = set(fields) - UPSERT_FIELDS
        if unknown:
            raise ValueError(f"Unknown tenant fields: {sorted(unknown)}")

        with _lock_for(shop_id):
            try:
                return self._upsert(shop_id, fields)
            except IntegrityError:
                # Another process inserted the same shop first; merge into its row
                self.db.rollback()
                logger.info("Concurrent insert for shop %s, retrying as update", shop_id)
                try:
                    return self._upsert(shop_id, fields)
                except SQLAlchemyError as e:
                    self._fail("upsert", e)
            except SQLAlchemyError as e:
                self._fail("upsert", e)

    def _upsert(self, shop_id: str, fields: dict) -> Tenant:
        tenant = self.db.get(Tenant, shop_id)
        if tenant is None:
            tenant = Tenant(shop_id=shop_id, surcharge_label={})
            self.db.add(tenant)
            created = True
        else:
            created = False
        for name, value in fields.items():
            setattr(tenant, name, value)
        self.db.commit()
        self.db.refresh(tenant)
        logger.info(
            "Tenant %s: shop=%s fields=%s",
            "created" if created else "updated",
            shop_id,
            sorted(fields),
        )
        return tenant

    def _fail(self, operation: str, error: SQLAlchemyError):
        self.db.rollback()
        logger.error("Tenant store %s failed: %s", operation, error.__class__.__name__)
        raise StoreUnavailable(f"Tenant store {operation} failed") from error
