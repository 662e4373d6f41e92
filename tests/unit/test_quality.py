"""
Unit Tests - Data Quality
"""
import polars as pl

from polyglot_shelf.quality.validators import (
    DataValidator,
    ValidationSeverity,
    ValidationStatus,
    create_edges_validator,
    create_products_validator,
    create_users_validator,
)


class TestDataValidator:
    """Tests for DataValidator"""

    def test_not_null_check_passes(self):
        """Test not null check with valid data"""
        df = pl.DataFrame({"id": [1, 2, 3], "name": ["a", "b", "c"]})

        validator = DataValidator()
        validator.add_not_null_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.PASSED
        assert result.passed_checks == 1

    def test_not_null_check_fails(self):
        """Test not null check with null values"""
        df = pl.DataFrame({"id": [1, None, 3], "name": ["a", "b", "c"]})

        validator = DataValidator()
        validator.add_not_null_check("id")

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.failed_checks == 1

    def test_composite_unique_check(self):
        """Uniqueness is checked over the column combination"""
        df = pl.DataFrame({"user_id": ["a", "a", "b"], "product_id": ["p1", "p2", "p1"]})

        validator = DataValidator()
        validator.add_unique_check(["user_id", "product_id"])

        assert validator.validate(df).status == ValidationStatus.PASSED

    def test_unique_check_fails(self):
        """Test unique check with duplicates"""
        df = pl.DataFrame({"id": [1, 2, 1]})

        validator = DataValidator()
        validator.add_unique_check(["id"])

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        assert result.checks[0].failed_rows == 1

    def test_range_check(self):
        """Test range check"""
        df = pl.DataFrame({"price": [10.0, 50.0, -5.0, 200.0]})

        validator = DataValidator()
        validator.add_range_check("price", min_value=0, max_value=100)

        result = validator.validate(df)

        assert result.status == ValidationStatus.FAILED
        # Two values outside range: -5 and 200
        assert result.checks[0].failed_rows == 2

    def test_missing_column_fails_check(self):
        """A check on an absent column fails instead of raising"""
        validator = DataValidator()
        validator.add_not_null_check("missing")

        result = validator.validate(pl.DataFrame({"id": [1]}))

        assert result.status == ValidationStatus.FAILED
        assert "not found" in result.checks[0].message

    def test_warning_severity(self):
        """Warnings produce partial status, or failure in strict mode"""
        df = pl.DataFrame({"id": [1, None, 3]})

        lenient = DataValidator().add_not_null_check("id", severity=ValidationSeverity.WARNING)
        strict = DataValidator(strict_mode=True).add_not_null_check("id", severity=ValidationSeverity.WARNING)

        lenient_result = lenient.validate(df)
        assert lenient_result.status == ValidationStatus.PARTIAL
        assert lenient_result.errors == []
        assert strict.validate(df).status == ValidationStatus.FAILED

    def test_referential_integrity(self):
        """Orphans are counted; nulls are not orphans"""
        reference = pl.DataFrame({"id": ["a", "b"]})
        df = pl.DataFrame({"ref": ["a", "c", None, "d"]})

        validator = DataValidator()
        validator.add_referential_integrity_check("ref", reference, "id")

        result = validator.validate(df)

        assert result.checks[0].failed_rows == 2


class TestSnapshotValidators:
    """Tests for the pre-built warehouse snapshot validators"""

    def test_users_validator_passes(self, sample_users_df):
        result = create_users_validator().validate(sample_users_df)

        assert result.status == ValidationStatus.PASSED

    def test_duplicate_user_ids_are_errors(self):
        df = pl.DataFrame({"user_id": ["u1", "u1"], "name": ["A", "B"]})

        result = create_users_validator().validate(df)

        assert [c.name for c in result.errors] == ["unique_user_id"]

    def test_negative_price_is_only_a_warning(self, sample_products_df):
        df = sample_products_df.with_columns(
            pl.when(pl.col("product_id") == "prod_1").then(-1.0).otherwise(pl.col("price")).alias("price")
        )

        result = create_products_validator().validate(df)

        assert result.status == ValidationStatus.PARTIAL
        assert result.errors == []

    def test_edges_with_unknown_user_warn(self, sample_users_df, sample_products_df):
        """Unresolvable edges are left to the loader's edge policy"""
        edges = pl.DataFrame({
            "user_id": ["user-A", "user-Z"],
            "product_id": ["prod_1", "prod_1"],
        })

        result = create_edges_validator(sample_users_df, sample_products_df).validate(edges)

        assert result.errors == []
        assert result.warning_count == 1

    def test_null_edge_endpoint_is_error(self, sample_users_df, sample_products_df):
        edges = pl.DataFrame(
            {"user_id": ["user-A", None], "product_id": ["prod_1", "prod_2"]},
            schema={"user_id": pl.Utf8, "product_id": pl.Utf8},
        )

        result = create_edges_validator(sample_users_df, sample_products_df).validate(edges)

        assert result.status == ValidationStatus.FAILED
