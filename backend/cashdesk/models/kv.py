from __future__ import annotations

from ..extensions import db
from cashdesk.time_utils import to_utc_z


class KeyValueEntry(db.Model):
    """
    Durable key-value slot.

    WHY: The deficit engine persists whole documents (the record collection,
    engine settings, the receipt counter) under fixed keys. The table knows
    nothing about their contents.
    """
    __tablename__ = "kv_entries"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    key = db.Column(db.String(128), nullable=False, unique=True, index=True)
    value = db.Column(db.LargeBinary, nullable=False)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "size_bytes": len(self.value or b""),
            "updated_at": to_utc_z(self.updated_at),
        }
