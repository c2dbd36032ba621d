"""
Unit Tests - Dimension Store
"""
import polars as pl

from sku_enrichment.storage.connection import check_store_health
from sku_enrichment.storage.seed import seed_from_directory, seed_table


class TestDimensionStore:
    """Tests for DimensionStore and StoreConnection"""

    def test_get_fields_returns_requested_columns(self, dimension_store):
        """Test a bulk read only returns the requested columns"""
        conn = dimension_store.connect()
        try:
            row = conn.get_fields("dim_sku_info", "S1", "info", ["sku_name", "spu_id"])
        finally:
            conn.close()

        assert row == {"sku_name": "Phone X", "spu_id": "F1"}

    def test_missing_row(self, dimension_store):
        """Test absent rows and columns"""
        conn = dimension_store.connect()
        try:
            assert conn.get_fields("dim_sku_info", "S404", "info", ["sku_name"]) == {}
            assert conn.get_field("dim_sku_info", "S404", "info", "sku_name") is None
            assert conn.get_field("dim_sku_info", "S1", "info", "unknown") is None
            assert conn.get_fields("dim_sku_info", "S1", "info", []) == {}
        finally:
            conn.close()

    def test_put_row_upserts_and_removes(self, dimension_store):
        """Test overwriting a column and deleting one with None"""
        dimension_store.put_row("dim_spu_info", "F1", {"spu_name": "Handset"})
        dimension_store.put_row("dim_sku_info", "S1", {"tm_id": None})

        conn = dimension_store.connect()
        try:
            assert conn.get_field("dim_spu_info", "F1", "info", "spu_name") == "Handset"
            assert conn.get_field("dim_sku_info", "S1", "info", "tm_id") is None
            assert conn.get_field("dim_sku_info", "S1", "info", "sku_name") == "Phone X"
        finally:
            conn.close()

    def test_namespaces_are_isolated(self, dimension_store):
        """Test rows written under another namespace are invisible"""
        from sku_enrichment.storage.dimension_store import DimensionStore

        other = DimensionStore(dimension_store.engine, namespace="other")
        other.put_row("dim_spu_info", "F9", {"spu_name": "Tablet"})

        conn = dimension_store.connect()
        try:
            assert conn.get_field("dim_spu_info", "F9", "info", "spu_name") is None
        finally:
            conn.close()

    def test_health_check(self, dimension_store):
        """Test health reporting for a reachable store"""
        health = check_store_health(dimension_store.engine)

        assert health["status"] == "healthy"
        assert "latency_ms" in health


class TestSeeding:
    """Tests for CSV dimension seeding"""

    def test_seed_table(self, dimension_store, catalog):
        """Test rows are written with string values and undeclared columns ignored"""
        df = pl.DataFrame({
            "id": [10, 11],
            "name": ["Audio", "Video"],
            "category2_id": [2, 2],
            "ignored": ["x", "y"],
        })

        written = seed_table(dimension_store, catalog.category3, df)

        conn = dimension_store.connect()
        try:
            row = conn.get_fields("dim_base_category3", "10", "info", ["name", "category2_id", "ignored"])
        finally:
            conn.close()

        assert written == 2
        assert row == {"name": "Audio", "category2_id": "2"}

    def test_seed_from_directory(self, dimension_store, catalog, tmp_path):
        """Test only tables with a CSV export are seeded"""
        seed_dir = tmp_path / "seed"
        seed_dir.mkdir()
        (seed_dir / "dim_base_trademark.csv").write_text("id,tm_name\nT7,Globex\n")

        results = seed_from_directory(dimension_store, catalog, seed_dir)

        assert results == {"dim_base_trademark": 1}
        conn = dimension_store.connect()
        try:
            assert conn.get_field("dim_base_trademark", "T7", "info", "tm_name") == "Globex"
        finally:
            conn.close()
