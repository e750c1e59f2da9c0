"""
Scene Model
"""

import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, Integer, String, DateTime, Index, UniqueConstraint

from scenegen.models import Base


class SceneStatus(str, Enum):
    """Scene status, mirrors the latest generation"""

    QUEUED = "queued"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class SceneModel(Base):
    """
    Scene - A start/end keyframe pair rendered into a clip

    The ordinal is assigned once at creation from the project's
    scene counter and never changes.
    """

    __tablename__ = "scenes"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String, nullable=False, index=True)
    project_id = Column(String, nullable=False, index=True)
    ordinal = Column(Integer, nullable=False)

    # Current generation version (1..n)
    version = Column(Integer, nullable=False, default=1)

    # Source keyframes (storage keys)
    start_key = Column(String, nullable=False)
    end_key = Column(String, nullable=True)
    shot_type_id = Column(String, nullable=False)

    status = Column(String, nullable=False, default=SceneStatus.QUEUED.value)

    # Last issued keyframe URLs
    start_frame_url = Column(String, nullable=True)
    end_frame_url = Column(String, nullable=True)
    signed_url_expires_at = Column(DateTime, nullable=True)

    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("project_id", "ordinal", name="uq_scene_project_ordinal"),
        Index("idx_scene_owner_project", "owner_id", "project_id"),
    )

    def to_dict(self) -> dict:
        """Convert scene model to dictionary (keyframe URLs excluded)"""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "project_id": self.project_id,
            "ordinal": self.ordinal,
            "version": self.version,
            "start_key": self.start_key,
            "end_key": self.end_key,
            "shot_type_id": self.shot_type_id,
            "status": self.status,
            "signed_url_expires_at": self.signed_url_expires_at.isoformat() if self.signed_url_expires_at else None,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
