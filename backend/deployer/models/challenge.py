"""
Challenge model.

Owned by the challenge catalogue; the deployer only reads the fields it
needs to build and publish a challenge.
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Boolean
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from deployer.core.database import Base


class Challenge(Base):
    """Challenge record."""

    __tablename__ = "challenges"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    github_url = Column(String(500), nullable=True)
    deployable = Column(Boolean, nullable=False, default=False)
    port = Column(Integer, nullable=False, default=4445)
    internal_port = Column(Integer, nullable=False, default=8080)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    deployment = relationship(
        "Deployment",
        back_populates="challenge",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
