"""
Dimension Store Schema

Dimension rows are kept in a single key-column table: one row per
(namespace, table, row key, column family, column). A logical dimension row
is the set of cells sharing a row key, so columns can be read individually
or in bulk without a fixed relational schema per dimension.
"""

from typing import Optional

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all store models"""
    pass


class DimensionCell(Base):
    """Single attribute value of a dimension row"""

    __tablename__ = "dimension_cells"

    namespace: Mapped[str] = mapped_column(String(64), primary_key=True)
    table_name: Mapped[str] = mapped_column(String(128), primary_key=True)
    row_key: Mapped[str] = mapped_column(String(128), primary_key=True)
    column_family: Mapped[str] = mapped_column(String(32), primary_key=True)
    column_name: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_dimension_cells_row", "namespace", "table_name", "row_key"),
    )

    def __repr__(self) -> str:
        return f"<DimensionCell {self.table_name}[{self.row_key}].{self.column_family}:{self.column_name}>"
