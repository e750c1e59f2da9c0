"""
Project, Shot Type, Profile and bookkeeping models
"""

import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, Integer, String, JSON, DateTime, UniqueConstraint

from scenegen.models import Base


class ProfileStatus(str, Enum):
    """Account approval state"""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ProjectModel(Base):
    """Project - Owner of an ordered list of scenes"""

    __tablename__ = "projects"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String, nullable=False, index=True)

    # Slug used in storage paths
    name = Column(String, nullable=False)

    # Last assigned scene ordinal
    scene_counter = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("owner_id", "name", name="uq_project_owner_name"),
    )


class ShotTypeModel(Base):
    """ShotType - Named prompt template (global when owner_id is NULL)"""

    __tablename__ = "shot_types"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String, nullable=True, index=True)
    name = Column(String, nullable=False)
    prompt_template = Column(String, nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ProfileModel(Base):
    """Profile - Approval state of a user account"""

    __tablename__ = "profiles"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=True)
    status = Column(String, nullable=False, default=ProfileStatus.PENDING.value)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class PublicMirrorModel(Base):
    """PublicMirror - Public copy of a private object, made once per source"""

    __tablename__ = "public_mirrors"

    id = Column(Integer, primary_key=True, index=True)
    source_key = Column(String, unique=True, nullable=False, index=True)
    public_key = Column(String, nullable=False)
    public_url = Column(String, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ErrorEventModel(Base):
    """ErrorEvent - Persisted record of a failed request"""

    __tablename__ = "error_events"

    id = Column(Integer, primary_key=True, index=True)
    route = Column(String, nullable=False)
    method = Column(String, nullable=False)
    status = Column(Integer, nullable=False)
    code = Column(String, nullable=False, index=True)
    message = Column(String, nullable=False)
    correlation_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=True)
    safe_context = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
