"""Durable storage and lookup of access tokens. No business rules live here."""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.models.access_token import AccessToken


class TokenStore:
    """Query helpers over the access_tokens table."""

    def __init__(self, db: Session):
        self.db = db

    def add(self, token: AccessToken) -> AccessToken:
        """Stage a new token and flush so its id is assigned."""
        self.db.add(token)
        self.db.flush()
        return token

    def get(self, token_id: int) -> Optional[AccessToken]:
        return self.db.query(AccessToken).filter(AccessToken.id == token_id).first()

    def find_by_hash(self, secret_hash: str) -> Optional[AccessToken]:
        return (
            self.db.query(AccessToken)
            .filter(AccessToken.secret_hash == secret_hash)
            .populate_existing()
            .first()
        )

    def reload(self, token_id: int) -> Optional[AccessToken]:
        """Read the current row, overwriting any state held by the session."""
        return (
            self.db.query(AccessToken)
            .filter(AccessToken.id == token_id)
            .populate_existing()
            .first()
        )

    def claim_forward(self, token_id: int, max_forwards: Optional[int] = None) -> bool:
        """
        Count one more child against an unrevoked token.

        The conditional UPDATE write-locks the row until the current
        transaction ends, so a concurrent revoke either commits first (and
        this returns False) or waits until the child is committed.
        """
        conditions = [AccessToken.id == token_id, AccessToken.revoked.is_(False)]
        if max_forwards is not None:
            conditions.append(AccessToken.forward_count < max_forwards)
        result = self.db.execute(
            update(AccessToken)
            .where(*conditions)
            .values(forward_count=AccessToken.forward_count + 1)
        )
        return result.rowcount == 1

    def mark_revoked(self, token_id: int, when: datetime) -> bool:
        """
        Flip the revoked flag.

        Returns True only for the call that changed the row.
        """
        result = self.db.execute(
            update(AccessToken)
            .where(AccessToken.id == token_id, AccessToken.revoked.is_(False))
            .values(revoked=True, revoked_at=when)
        )
        return result.rowcount == 1

    def record_access(self, token_id: int, when: datetime) -> None:
        """Bump the access counter atomically."""
        self.db.execute(
            update(AccessToken)
            .where(AccessToken.id == token_id)
            .values(
                access_count=AccessToken.access_count + 1,
                last_accessed_at=when,
            )
        )

    def ancestry(self, token: AccessToken) -> List[AccessToken]:
        """
        Provenance path from the root token down to ``token`` inclusive.

        Follows parent pointers upward only; depth bounds the walk.
        """
        path = [token]
        current = token
        for _ in range(token.depth):
            if current.parent_token_id is None:
                break
            current = self.get(current.parent_token_id)
            if current is None:
                break
            path.append(current)
        path.reverse()
        return path

    def list_for_subject(self, subject_type: str, subject_id: int) -> List[AccessToken]:
        return (
            self.db.query(AccessToken)
            .filter(
                AccessToken.subject_type == subject_type,
                AccessToken.subject_id == subject_id,
            )
            .order_by(AccessToken.created_at.desc(), AccessToken.id.desc())
            .all()
        )
