# SPDX-License-Identifier: MIT
"""SQLAlchemy database models for the relational metadata store."""

from datetime import UTC, datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


class PackageRow(Base):
    """Package metadata model."""

    __tablename__ = "packages"

    name: Mapped[str] = mapped_column(String(255), primary_key=True)
    private: Mapped[bool] = mapped_column(Boolean, default=True)
    download_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    # Relationships, in insertion order
    versions: Mapped[list["VersionRow"]] = relationship(
        "VersionRow",
        back_populates="package",
        cascade="all, delete-orphan",
        order_by="VersionRow.id",
    )
    uploaders: Mapped[list["UploaderRow"]] = relationship(
        "UploaderRow",
        back_populates="package",
        cascade="all, delete-orphan",
        order_by="UploaderRow.id",
    )

    def __repr__(self) -> str:
        return f"<PackageRow(name={self.name!r}, private={self.private!r})>"


class VersionRow(Base):
    """Package version model.

    No uniqueness constraint on (package_name, version): the store appends,
    duplicate policy belongs to the publisher.
    """

    __tablename__ = "package_versions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    package_name: Mapped[str] = mapped_column(
        String(255), ForeignKey("packages.name", ondelete="CASCADE"), index=True
    )
    version: Mapped[str] = mapped_column(String(100))
    pubspec: Mapped[dict[str, Any]] = mapped_column(JSON)
    pubspec_yaml: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    uploader: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    readme: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    changelog: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now)

    # Relationships
    package: Mapped["PackageRow"] = relationship("PackageRow", back_populates="versions")
    dependencies: Mapped[list["DependencyRow"]] = relationship(
        "DependencyRow", back_populates="version", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<VersionRow(package={self.package_name!r}, version={self.version!r})>"


class UploaderRow(Base):
    """Uploader identity allowed to publish a package."""

    __tablename__ = "package_uploaders"
    __table_args__ = (UniqueConstraint("package_name", "email", name="uq_package_uploader"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    package_name: Mapped[str] = mapped_column(
        String(255), ForeignKey("packages.name", ondelete="CASCADE")
    )
    email: Mapped[str] = mapped_column(String(255), index=True)

    # Relationships
    package: Mapped["PackageRow"] = relationship("PackageRow", back_populates="uploaders")

    def __repr__(self) -> str:
        return f"<UploaderRow(email={self.email!r})>"


class DependencyRow(Base):
    """Dependency name declared by a version's pubspec, indexed for search."""

    __tablename__ = "version_dependencies"
    __table_args__ = (Index("ix_version_dependencies_name", "dependency"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    version_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("package_versions.id", ondelete="CASCADE")
    )
    package_name: Mapped[str] = mapped_column(String(255))
    dependency: Mapped[str] = mapped_column(String(255))

    # Relationships
    version: Mapped["VersionRow"] = relationship("VersionRow", back_populates="dependencies")

    def __repr__(self) -> str:
        return f"<DependencyRow(package={self.package_name!r}, dependency={self.dependency!r})>"


class DailyStatRow(Base):
    """Downloads of a package on one local calendar day."""

    __tablename__ = "daily_stats"

    package_name: Mapped[str] = mapped_column(String(255), primary_key=True)
    day: Mapped[str] = mapped_column(String(8), primary_key=True)  # YYYYMMDD
    count: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<DailyStatRow(package={self.package_name!r}, day={self.day!r})>"
