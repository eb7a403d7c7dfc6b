"""
SQLAlchemy tables behind the object store.

Responsibility
--------------
Persist documents in an entity/field layout: one ``store_entities`` row per
document and one ``store_fields`` row per field value.  Multi-valued
relationship fields are several rows with increasing ``position``.

Each field row keeps its value twice: ``value_text`` (canonical string,
ISO dates) for equality and lexical ranges, and ``value_num`` for numbers
so ``<``/``>``/``BETWEEN`` on amounts and hours compare numerically.
"""

from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice_kernel.db.base import Base, IdType


class EntityRecord(Base):
    """One document: type tag, lifecycle status and timestamps."""

    __tablename__ = "store_entities"

    __table_args__ = (
        Index("idx_store_entity_type_status", "entity_type", "status"),
    )

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="publish")
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    fields: Mapped[list["FieldRecord"]] = relationship(
        "FieldRecord",
        back_populates="entity",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<EntityRecord {self.entity_type}:{self.id} {self.status}>"


class FieldRecord(Base):
    """One value of one field of one document."""

    __tablename__ = "store_fields"

    __table_args__ = (
        Index("idx_store_field_entity_name", "entity_id", "name"),
        Index("idx_store_field_name_num", "name", "value_num"),
    )

    entity_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("store_entities.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_multi: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    value_type: Mapped[str] = mapped_column(String(20), nullable=False)
    value_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    value_num: Mapped[float | None] = mapped_column(
        Numeric(38, 9, asdecimal=False), nullable=True
    )

    entity: Mapped[EntityRecord] = relationship("EntityRecord", back_populates="fields")

    def __repr__(self) -> str:
        return f"<FieldRecord {self.entity_id}.{self.name}[{self.position}]={self.value_text!r}>"
