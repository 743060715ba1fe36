import json

import pytest

from threesixtygiving.core.domain_models import DataType, RawSourcePayload
from threesixtygiving.core.errors import ParseError
from threesixtygiving.ingest.parsers import (
    JsonGrantsParser,
    TabularGrantsParser,
    flatten_grant,
    parse_payload,
    parser_for,
)


def _payload(descriptor, content, data_type=None):
    return RawSourcePayload(descriptor=descriptor, content=content,
                            data_type=data_type or descriptor.data_type)


# =============================================================================
# JSON
# =============================================================================

def test_json_grants_are_flattened(make_descriptor, grants_json_bytes):
    descriptor = make_descriptor("foo")

    batch = JsonGrantsParser().parse(_payload(descriptor, grants_json_bytes))

    assert len(batch.records) == 2
    first = batch.records[0]
    assert first["identifier"] == "360G-foo-001"
    assert first["amount_awarded"] == 5000.0
    assert first["amount_applied_for"] == 6000.0
    assert first["award_date"] == "2019-04-10"
    assert first["recipient_org_identifier"] == "GB-CHC-123"
    assert first["recipient_org_charity_number"] == "123"
    assert first["funding_org_name"] == "Foo Trust"
    assert first["planned_dates_start_date"] == "2019-05-01"
    assert first["planned_dates_duration"] == 12


def test_multiple_classifications_are_all_kept(make_descriptor, grants_json_bytes):
    batch = JsonGrantsParser().parse(_payload(make_descriptor("foo"), grants_json_bytes))

    record = batch.records[0]
    assert record["classifications_title"] == "Arts; Youth"
    assert record["classifications_code"] == "A1; Y2"


def test_non_numeric_amount_is_kept_raw_with_warning(make_descriptor, grants_json_bytes):
    batch = JsonGrantsParser().parse(_payload(make_descriptor("foo"), grants_json_bytes))

    second = batch.records[1]
    assert second["amount_awarded"] == "N/A"
    warnings = [w for w in batch.warnings if w.field == "amount_awarded"]
    assert len(warnings) == 1
    assert warnings[0].record_identifier == "360G-foo-002"
    assert warnings[0].value == "N/A"


def test_columns_are_discovered_in_first_seen_order(make_descriptor, grants_json_bytes):
    batch = JsonGrantsParser().parse(_payload(make_descriptor("foo"), grants_json_bytes))

    assert batch.columns[:3] == ["identifier", "title", "description"]
    assert "classifications_vocabulary" in batch.columns
    assert len(batch.columns) == len(set(batch.columns))


def test_missing_required_field_warns_but_keeps_record(make_descriptor):
    content = json.dumps({"grants": [{"id": "g1", "title": "No funder"}]}).encode()

    batch = JsonGrantsParser().parse(_payload(make_descriptor("foo"), content))

    assert batch.records == [{"identifier": "g1", "title": "No funder"}]
    assert [w.field for w in batch.warnings] == ["funding_org_name"]


def test_bare_list_document_is_accepted(make_descriptor):
    content = json.dumps([{"id": "g1", "fundingOrganization": [{"name": "F"}]}]).encode()

    batch = JsonGrantsParser().parse(_payload(make_descriptor("foo"), content))

    assert batch.records[0]["funding_org_name"] == "F"


@pytest.mark.parametrize("content", [
    b"{not json",
    json.dumps({"data": []}).encode(),
    json.dumps({"grants": []}).encode(),
    json.dumps({"grants": "none"}).encode(),
    json.dumps({"grants": [1, 2]}).encode(),
    json.dumps("grants").encode(),
])
def test_invalid_json_documents_raise(make_descriptor, content):
    descriptor = make_descriptor("foo")

    with pytest.raises(ParseError) as excinfo:
        JsonGrantsParser().parse(_payload(descriptor, content))

    assert excinfo.value.descriptor is descriptor


def test_flatten_grant_scalar_lists():
    flat = flatten_grant({"id": "g1", "dataSource": ["a", "b"], "tags": []})

    assert flat == {"identifier": "g1", "data_source": "a; b", "tags": None}


def test_uneven_classifications_stay_paired():
    flat = flatten_grant({"id": "g1", "classifications": [
        {"code": "A1", "title": "Arts"},
        {"title": "Youth"},
        {"code": "C3", "title": "Crime"},
    ]})

    assert flat["classifications_code"] == "A1; ; C3"
    assert flat["classifications_title"] == "Arts; Youth; Crime"


def test_sub_field_only_in_a_later_entry_keeps_its_position():
    flat = flatten_grant({"id": "g1", "classifications": [{"title": "Arts"}, {"title": "Youth", "code": "Y2"}]})

    assert flat["classifications_code"] == "; Y2"
    assert flat["classifications_title"] == "Arts; Youth"


# =============================================================================
# TABULAR
# =============================================================================

def test_csv_headers_are_normalized(make_descriptor, grants_csv_bytes):
    descriptor = make_descriptor("bar", data_type=DataType.CSV)

    batch = TabularGrantsParser().parse(_payload(descriptor, grants_csv_bytes))

    assert batch.columns == [
        "identifier", "title", "description", "currency", "amount_awarded", "award_date",
        "recipient_org_identifier", "recipient_org_name", "funding_org_identifier",
        "funding_org_name", "grant_programme_title",
    ]
    # The trailing blank row is dropped
    assert len(batch.records) == 2


def test_csv_values_are_coerced(make_descriptor, grants_csv_bytes):
    descriptor = make_descriptor("bar", data_type=DataType.CSV)

    batch = TabularGrantsParser().parse(_payload(descriptor, grants_csv_bytes))

    first, second = batch.records
    assert first["amount_awarded"] == pytest.approx(1234.50)
    assert first["award_date"] == "2019-04-10"
    assert first["grant_programme_title"] == "Small grants"
    assert second["amount_awarded"] == "N/A"
    assert "grant_programme_title" not in second
    assert [w.field for w in batch.warnings] == ["amount_awarded"]


def test_duplicate_headers_get_suffixes(make_descriptor):
    content = b"Identifier,Title,Title,Funding Org:Name\ng1,First,Second,F\n"
    descriptor = make_descriptor("bar", data_type=DataType.CSV)

    batch = TabularGrantsParser().parse(_payload(descriptor, content))

    assert batch.records[0]["title"] == "First"
    assert batch.records[0]["title_2"] == "Second"


def test_cp1252_csv_is_decoded(make_descriptor):
    content = "Identifier,Title,Funding Org:Name\ng1,Café fund,F\n".encode("cp1252")
    descriptor = make_descriptor("bar", data_type=DataType.CSV)

    batch = TabularGrantsParser().parse(_payload(descriptor, content))

    assert batch.records[0]["title"] == "Café fund"


def test_csv_row_with_extra_fields_is_skipped_with_warning(make_descriptor):
    content = (
        b"Identifier,Title,Funding Org:Name\n"
        b"g1,First,F\n"
        b"g2,Second,F,stray\n"
        b"g3,Third,F\n"
    )
    descriptor = make_descriptor("bar", data_type=DataType.CSV)

    batch = TabularGrantsParser().parse(_payload(descriptor, content))

    assert [r["identifier"] for r in batch.records] == ["g1", "g3"]
    row_warnings = [w for w in batch.warnings if w.field == "row"]
    assert len(row_warnings) == 1
    assert row_warnings[0].value == "g2,Second,F,stray"
    assert row_warnings[0].dataset_identifier == "bar"


@pytest.mark.parametrize("content", [
    b"Identifier,Title,Funding Org:Name\n",
    b"Identifier,Title,Funding Org:Name\n,,\n , ,\n",
    b"",
])
def test_spreadsheet_without_data_rows_raises(make_descriptor, content):
    descriptor = make_descriptor("bar", data_type=DataType.CSV)

    with pytest.raises(ParseError):
        TabularGrantsParser().parse(_payload(descriptor, content))


def test_xlsx(make_descriptor, grants_xlsx_bytes):
    descriptor = make_descriptor("baz", data_type=DataType.XLSX)

    batch = TabularGrantsParser().parse(_payload(descriptor, grants_xlsx_bytes))

    assert [r["identifier"] for r in batch.records] == ["360G-baz-1", "360G-baz-2"]
    assert batch.records[0]["amount_awarded"] == 750.0
    assert batch.records[1]["amount_awarded"] == 12500.5
    assert batch.records[0]["beneficiary_location_name"] == "Leeds"
    assert "beneficiary_location_name" not in batch.records[1]
    assert "beneficiary_location_name" in batch.columns


def test_ods(make_descriptor, grants_ods_bytes):
    descriptor = make_descriptor("baz", data_type=DataType.ODS)

    batch = TabularGrantsParser().parse(_payload(descriptor, grants_ods_bytes))

    assert batch.records[0]["funding_org_name"] == "Baz Foundation"
    assert batch.records[1]["amount_awarded"] == 12500.5


def test_corrupt_workbook_raises(make_descriptor):
    descriptor = make_descriptor("baz", data_type=DataType.XLSX)

    with pytest.raises(ParseError):
        TabularGrantsParser().parse(_payload(descriptor, b"PK\x03\x04 truncated"))


# =============================================================================
# DISPATCH
# =============================================================================

def test_parser_for():
    assert isinstance(parser_for(DataType.JSON), JsonGrantsParser)
    for data_type in (DataType.CSV, DataType.XLSX, DataType.XLS, DataType.ODS):
        assert isinstance(parser_for(data_type), TabularGrantsParser)
    with pytest.raises(ValueError):
        parser_for(DataType.UNKNOWN)


def test_parse_payload_uses_resolved_type(make_descriptor, grants_csv_bytes):
    descriptor = make_descriptor("bar", data_type=DataType.UNKNOWN)

    batch = parse_payload(_payload(descriptor, grants_csv_bytes, data_type=DataType.CSV))

    assert len(batch.records) == 2
