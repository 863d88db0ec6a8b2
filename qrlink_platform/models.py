"""
Record types for QR Link Platform.

LogicalCode is the durable identity behind a public slug; Version is one
styled render of it. Storage backends return these records, never raw rows.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class LogicalCode:
    id: int
    slug: str
    destination_url: str
    title: str
    description: str = ""
    tags: str = ""
    click_count: int = 0
    favorite_version_id: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = _iso(self.created_at)
        data["updated_at"] = _iso(self.updated_at)
        return data


@dataclass
class Version:
    id: int
    code_id: int
    name: str
    style_config: Dict[str, Any] = field(default_factory=dict)
    image_path: Optional[str] = None
    logo_path: Optional[str] = None
    is_favorite: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = _iso(self.created_at)
        data["updated_at"] = _iso(self.updated_at)
        return data

    def summary(self) -> Dict[str, Any]:
        """Short form offered when a caller has to pick between versions."""
        return {"id": self.id, "name": self.name}
