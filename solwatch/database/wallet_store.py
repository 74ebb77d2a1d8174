"""
Watched-address persistence: SQLAlchemy-backed tracked_wallets table (SQLite).

Consumed at startup to re-establish subscriptions, and by track/untrack.
Addresses are validated as Solana public keys (solders) before insert.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from solders.pubkey import Pubkey
from sqlalchemy import Column, Integer, String, create_engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from solwatch.core.exceptions import InvalidAddressError
from solwatch.solwatch_logging import get_logger, short

logger = get_logger(__name__)

Base = declarative_base()


class TrackedWallet(Base):
    """One row per watched address."""

    __tablename__ = "tracked_wallets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet = Column(String(64), unique=True, nullable=False, index=True)
    created_at = Column(Integer, nullable=False)  # Unix timestamp


def validate_address(address: str) -> str:
    """Stripped address, or InvalidAddressError if not a base58 32-byte public key."""
    address = (address or "").strip()
    if not address:
        raise InvalidAddressError("address must be non-empty")
    try:
        Pubkey.from_string(address)
    except Exception as e:
        raise InvalidAddressError(f"Invalid Solana address: {address!r}") from e
    return address


class WalletStore:
    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        url = f"sqlite:///{self.db_path}"
        self._engine = create_engine(url, connect_args={"check_same_thread": False})
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
        Base.metadata.create_all(bind=self._engine)
        logger.info("wallet_store_ready", path=str(self.db_path))

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """Commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def add_wallet(self, address: str) -> bool:
        """True if inserted, False if already stored."""
        address = validate_address(address)
        try:
            with self._session_scope() as session:
                session.add(TrackedWallet(wallet=address, created_at=int(time.time())))
                session.flush()
        except IntegrityError:
            logger.debug("wallet_already_stored", address=short(address))
            return False
        logger.info("wallet_stored", address=short(address))
        return True

    def remove_wallet(self, address: str) -> bool:
        """True if a row was deleted; an absent address is not an error."""
        address = (address or "").strip()
        if not address:
            return False
        with self._session_scope() as session:
            deleted = (
                session.query(TrackedWallet)
                .filter(TrackedWallet.wallet == address)
                .delete(synchronize_session=False)
            )
        if deleted:
            logger.info("wallet_removed", address=short(address))
        return bool(deleted)

    def list_wallets(self) -> list[str]:
        with self._session_scope() as session:
            rows = session.execute(select(TrackedWallet.wallet).order_by(TrackedWallet.wallet))
            return [r[0] for r in rows]

    def count(self) -> int:
        with self._session_scope() as session:
            return int(session.execute(select(func.count(TrackedWallet.id))).scalar_one())

    def close(self) -> None:
        self._engine.dispose()
