from __future__ import annotations

from dataclasses import replace

import pytest

from sales_etl.errors import ValidationError
from sales_etl.mappers.schema_model import PROCESSED_LAYOUT
from sales_etl.services.csv_codec import (
    decode_csv_bytes,
    parse_csv_text,
    records_from_csv_text,
    render_processed_csv,
    transform_csv_text,
)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParseCSV:
    def test_header_and_rows_are_split(self, sample_csv) -> None:
        parsed = parse_csv_text(sample_csv)

        assert parsed.header is not None
        assert parsed.header[5] == "Order ID"
        assert len(parsed.rows) == 4
        assert parsed.is_processed is False

    def test_blank_lines_are_dropped(self, sample_csv) -> None:
        text = sample_csv.replace("\n", "\n\n", 2)
        assert len(parse_csv_text(text).rows) == 4

    def test_bom_is_ignored(self, sample_csv) -> None:
        parsed = parse_csv_text("\ufeff" + sample_csv)
        assert parsed.header[0] == "Region"

    def test_quoted_fields_keep_commas(self) -> None:
        parsed = parse_csv_text('a,b\n"Congo, Republic of",x\n')
        assert parsed.rows == [["Congo, Republic of", "x"]]

    def test_headerless_input(self, sample_rows, make_csv) -> None:
        parsed = parse_csv_text(make_csv(sample_rows, header=False), has_header=False)

        assert parsed.header is None
        assert len(parsed.rows) == 4

    def test_empty_input_is_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_csv_text("\n  \n")
        assert exc_info.value.code == "empty_csv"

    def test_non_utf8_bytes_are_rejected(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            decode_csv_bytes(b"\xff\xfe\xfa")
        assert exc_info.value.code == "invalid_encoding"

    def test_utf8_bom_bytes_are_decoded(self) -> None:
        assert decode_csv_bytes(b"\xef\xbb\xbfRegion") == "Region"


# ---------------------------------------------------------------------------
# Processed output
# ---------------------------------------------------------------------------


class TestProcessedCSV:
    def test_render_writes_processed_layout(self, sample_csv) -> None:
        result = transform_csv_text(sample_csv)
        lines = render_processed_csv(result.records).splitlines()

        assert lines[0] == ",".join(PROCESSED_LAYOUT)
        assert lines[1] == "Europe,France,Snacks,Online,Low,ORD-1,01/01/2024,01/05/2024,10,5.0,3.0,50.0,20.0,,4,0.60"
        assert len(lines) == 5

    def test_processed_csv_reads_back_as_same_records(self, sample_csv) -> None:
        records = transform_csv_text(sample_csv).records
        reloaded = records_from_csv_text(render_processed_csv(records))

        assert reloaded.errors == []
        assert [record.order_id for record in reloaded.records] == [record.order_id for record in records]
        assert [record.order_priority for record in reloaded.records] == ["Low", "High", "Medium", "Unknown"]
        assert reloaded.records[0].gross_margin == pytest.approx(0.60)

    def test_processed_csv_keeps_full_precision(self, make_csv) -> None:
        row = ["Asia", "Japan", "Snacks", "Online", "C", "ORD-9", "03/01/2024", "03/05/2024",
               "10", "9.335", "1.4449", "93.35", "14.449", ""]
        direct = transform_csv_text(make_csv([row])).records[0]

        processed = render_processed_csv([direct])
        reloaded = records_from_csv_text(processed).records[0]

        assert "9.335,1.4449,93.35,14.449,,4,0.85" in processed
        assert reloaded.gross_margin == pytest.approx(round(direct.gross_margin, 2))
        assert replace(direct, gross_margin=reloaded.gross_margin) == reloaded

    def test_profit_only_input_keeps_profit_column(self, make_csv) -> None:
        row = ["Asia", "Japan", "Snacks", "Online", "C", "ORD-9", "03/01/2024", "03/05/2024",
               "10", "9.335", "1.4449", "93.35", "", "78.901"]
        record = transform_csv_text(make_csv([row])).records[0]

        reloaded = records_from_csv_text(render_processed_csv([record])).records[0]

        assert (reloaded.total_cost, reloaded.total_profit) == (None, 78.901)

    def test_raw_csv_is_transformed_when_loading(self, sample_csv) -> None:
        result = records_from_csv_text(sample_csv)

        assert len(result.records) == 4
        assert result.records[0].order_processing_time == 4
