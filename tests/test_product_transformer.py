"""
Tests for the composition models and ProductTransformer.

Run with: pytest tests/test_product_transformer.py -v
"""

import pytest
from pydantic import ValidationError

from config.settings import StorageConfig
from fabrix.transformers.product_transformer import (
    CompositionGrade,
    CompositionRecord,
    FiberEntry,
    ProductTransformer,
)


@pytest.fixture
def transformer():
    return ProductTransformer()


class TestFiberEntry:
    def test_integral_percentage_serialized_as_int(self):
        data = FiberEntry(name="cotton", percentage=60.0).model_dump(mode="json")
        assert data == {"name": "cotton", "percentage": 60}
        assert isinstance(data["percentage"], int)

    def test_fractional_percentage_kept(self):
        assert FiberEntry(name="wool", percentage=12.5).model_dump(mode="json")["percentage"] == 12.5

    def test_name_whitespace_collapsed(self):
        assert FiberEntry(name="  merino   wool ", percentage=10).name == "merino wool"

    def test_bool_percentage_rejected(self):
        with pytest.raises(ValidationError):
            FiberEntry(name="cotton", percentage=True)


class TestCompositionRecord:
    def test_defaults(self):
        record = CompositionRecord()
        assert record.fibers == []
        assert record.lining is None
        assert record.composition_grade == CompositionGrade.UNKNOWN

    def test_unknown_keys_ignored(self):
        record = CompositionRecord.model_validate(
            {"fibers": [], "composition_grade": "Unknown", "confidence": 0.9}
        )
        assert "confidence" not in record.to_dict()

    def test_to_dict_uses_grade_value(self):
        record = CompositionRecord(composition_grade="Semi-Synthetic")
        assert record.to_dict()["composition_grade"] == "Semi-Synthetic"


class TestProductTransformer:
    def test_html_escaped(self, transformer, valid_product):
        valid_product["title"] = '<b>Shirt</b> & "Tie"'
        valid_product["brand"] = "<script>x</script>"
        record = transformer.transform(valid_product)
        assert record.title == "&lt;b&gt;Shirt&lt;/b&gt; &amp; &#34;Tie&#34;"
        assert record.brand == "&lt;script&gt;x&lt;/script&gt;"

    def test_title_truncated_after_escaping(self, transformer, valid_product):
        valid_product["title"] = "<" * 200
        assert len(transformer.transform(valid_product).title) == 500

    def test_raw_text_truncated(self, valid_product):
        transformer = ProductTransformer(StorageConfig(max_raw_text_length=10))
        valid_product["raw_text"] = "Content: 100% linen, very long text"
        assert transformer.transform(valid_product).raw_text == "Content: 1"

    def test_missing_raw_text(self, transformer, valid_product):
        del valid_product["raw_text"]
        assert transformer.transform(valid_product).raw_text == ""

    def test_empty_trim_stored_as_null(self, transformer, valid_product):
        valid_product["trim"] = []
        assert transformer.transform(valid_product).trim is None

    def test_empty_lining_kept(self, transformer, valid_product):
        valid_product["lining"] = []
        assert transformer.transform(valid_product).lining == []

    def test_row_shape(self, transformer, valid_product):
        row = transformer.transform(valid_product).to_row()
        assert row["fibers"] == [{"name": "linen", "percentage": 100}]
        assert row["composition_grade"] == "Natural"
        assert row["check_count"] == 1
        assert "other" not in row

    def test_build_payload_drops_other(self, transformer):
        record = CompositionRecord.model_validate(
            {
                "fibers": [{"name": "wool", "percentage": 100}],
                "other": [{"label": "Padding", "fibers": [{"name": "down", "percentage": 100}]}],
                "composition_grade": "Natural",
            }
        )
        data = transformer.build_payload(record, "https://x.test/coat", "Coat", "x")
        assert "other" not in data
        assert data["fibers"] == [{"name": "wool", "percentage": 100}]
        assert data["lining"] is None
