"""
Dimension Store

Durable key-column store holding the reference tables of the dimension chain.
Reads go through a ``StoreConnection`` checked out by a partition worker;
writes (``put_row``) exist for seeding and are not used by the pipeline.
"""

from typing import Dict, Mapping, Optional, Sequence

import structlog
from sqlalchemy import and_, delete, insert, select
from sqlalchemy.engine import Connection, Engine

from sku_enrichment.config.settings import DimensionStoreSettings
from sku_enrichment.storage.connection import create_store_engine
from sku_enrichment.storage.models import Base, DimensionCell

logger = structlog.get_logger(__name__)


class StoreConnection:
    """
    One open connection to the dimension store.

    Example:
        conn = store.connect()
        try:
            row = conn.get_fields("dim_sku_info", "S1", "info", ["sku_name"])
        finally:
            conn.close()
    """

    def __init__(self, connection: Connection, namespace: str):
        self._conn = connection
        self._namespace = namespace

    def _row_filter(self, table: str, row_key: str, column_family: str):
        return and_(
            DimensionCell.namespace == self._namespace,
            DimensionCell.table_name == table,
            DimensionCell.row_key == row_key,
            DimensionCell.column_family == column_family,
        )

    def get_field(
        self,
        table: str,
        row_key: str,
        column_family: str,
        column: str,
    ) -> Optional[str]:
        """
        Read a single column of a row.

        Returns:
            The column value, or None when the row or column is absent
        """
        stmt = select(DimensionCell.value).where(
            self._row_filter(table, row_key, column_family),
            DimensionCell.column_name == column,
        )
        return self._conn.execute(stmt).scalar_one_or_none()

    def get_fields(
        self,
        table: str,
        row_key: str,
        column_family: str,
        columns: Sequence[str],
    ) -> Dict[str, Optional[str]]:
        """
        Read several columns of a row.

        Returns:
            Mapping of every requested column present in the row; empty when
            the row does not exist
        """
        if not columns:
            return {}

        stmt = select(DimensionCell.column_name, DimensionCell.value).where(
            self._row_filter(table, row_key, column_family),
            DimensionCell.column_name.in_(list(columns)),
        )
        return {name: value for name, value in self._conn.execute(stmt)}

    def recover(self) -> None:
        """
        Make the connection usable again after a failed statement.

        A disconnect invalidates the connection inside its autobegun
        transaction; until that is rolled back every statement raises
        ``PendingRollbackError``. The next statement then checks out a fresh
        DBAPI connection.
        """
        if self._conn.invalidated or self._conn.in_transaction():
            self._conn.rollback()
            logger.info("Dimension store connection rolled back for retry", invalidated=self._conn.invalidated)

    def close(self) -> None:
        self._conn.close()


class DimensionStore:
    """
    Dimension store client.

    Owns the engine (and its pool); hands out ``StoreConnection`` objects.
    """

    def __init__(self, engine: Engine, namespace: str = "gmall", column_family: str = "info"):
        self.engine = engine
        self.namespace = namespace
        self.column_family = column_family

    @classmethod
    def from_settings(cls, config: DimensionStoreSettings) -> "DimensionStore":
        return cls(
            create_store_engine(config),
            namespace=config.namespace,
            column_family=config.column_family,
        )

    def connect(self) -> StoreConnection:
        """Open a connection; failures propagate to the caller."""
        connection = self.engine.connect().execution_options(isolation_level="AUTOCOMMIT")
        logger.debug("Dimension store connection opened")
        return StoreConnection(connection, self.namespace)

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)
        logger.info("Dimension store schema ensured", table=DimensionCell.__tablename__)

    def put_row(self, table: str, row_key: str, values: Mapping[str, Optional[str]]) -> None:
        """
        Upsert the given columns of a row.

        ``None`` values remove the column from the row.
        """
        columns = list(values)
        cells = [
            {
                "namespace": self.namespace,
                "table_name": table,
                "row_key": row_key,
                "column_family": self.column_family,
                "column_name": column,
                "value": str(value),
            }
            for column, value in values.items()
            if value is not None
        ]

        with self.engine.begin() as conn:
            conn.execute(
                delete(DimensionCell).where(
                    DimensionCell.namespace == self.namespace,
                    DimensionCell.table_name == table,
                    DimensionCell.row_key == row_key,
                    DimensionCell.column_family == self.column_family,
                    DimensionCell.column_name.in_(columns),
                )
            )
            if cells:
                conn.execute(insert(DimensionCell), cells)

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("Dimension store engine disposed")
