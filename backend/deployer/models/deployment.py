"""
Deployment model for tracking challenge containers.
"""
from datetime import datetime
from sqlalchemy import BigInteger, Column, String, DateTime, ForeignKey, Integer, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from deployer.core.database import Base


class Deployment(Base):
    """Deployment record, one per challenge."""

    __tablename__ = "deployments"

    challenge_id = Column(
        UUID(as_uuid=True),
        ForeignKey("challenges.id", ondelete="CASCADE"),
        primary_key=True,
    )
    github_url = Column(String(500), nullable=True)
    port = Column(Integer, nullable=True, index=True)
    internal_port = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default="not_deployed", index=True)  # 'not_deployed', 'building', 'active', 'failed'
    container_id = Column(String(64), nullable=True, index=True)
    storage_path = Column(String(1000), nullable=True)
    deployed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    challenge = relationship("Challenge", back_populates="deployment")


class DeploymentLog(Base):
    """One line of a deployment's append-only log."""

    __tablename__ = "deployment_logs"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    challenge_id = Column(
        UUID(as_uuid=True),
        ForeignKey("deployments.challenge_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
