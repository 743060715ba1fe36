import io
import json
import threading

import pandas as pd
import pytest
import requests

from threesixtygiving.core.domain_models import DataType, DatasetDescriptor


class FakeResponse:
    def __init__(self, status_code=200, content=b"", content_type=None):
        self.status_code = status_code
        self.content = content
        self.headers = {"content-type": content_type} if content_type else {}

    def json(self):
        return json.loads(self.content.decode("utf-8"))


class FakeSession:
    """
    Stand-in for requests.Session.

    routes maps URL -> list of outcomes, consumed one per request; the last
    outcome repeats. An outcome is a FakeResponse, an exception instance, or
    a callable returning either.
    """

    def __init__(self, routes=None):
        self.routes = {url: list(outcomes) for url, outcomes in (routes or {}).items()}
        self.headers = {}
        self.calls = []
        self._lock = threading.Lock()

    def get(self, url, timeout=None):
        with self._lock:
            self.calls.append(url)
            outcomes = self.routes.get(url)
            if not outcomes:
                outcome = requests.ConnectionError(f"no route for {url}")
            elif len(outcomes) > 1:
                outcome = outcomes.pop(0)
            else:
                outcome = outcomes[0]
        if callable(outcome) and not isinstance(outcome, Exception):
            outcome = outcome()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def count(self, url):
        return self.calls.count(url)


@pytest.fixture()
def fake_session():
    return FakeSession


@pytest.fixture()
def fake_response():
    return FakeResponse


@pytest.fixture()
def make_descriptor():
    def _make(identifier, url=None, data_type=DataType.JSON, **kwargs):
        kwargs.setdefault("publisher_name", f"Publisher {identifier}")
        kwargs.setdefault("publisher_prefix", f"360G-{identifier}")
        return DatasetDescriptor(
            identifier=identifier,
            download_url=url or f"https://{identifier}.example.org/grants.{data_type.value}",
            data_type=data_type,
            **kwargs,
        )
    return _make


@pytest.fixture()
def grants_document():
    return {
        "grants": [
            {
                "id": "360G-foo-001",
                "title": "Community garden",
                "description": "Raised beds for a shared garden",
                "currency": "GBP",
                "amountAwarded": 5000,
                "amountAppliedFor": "£6,000.00",
                "awardDate": "2019-04-10",
                "recipientOrganization": [
                    {"id": "GB-CHC-123", "name": "Green Spaces", "charityNumber": "123"}
                ],
                "fundingOrganization": [{"id": "GB-CHC-999", "name": "Foo Trust"}],
                "plannedDates": [
                    {"startDate": "2019-05-01", "endDate": "2020-04-30", "duration": 12}
                ],
                "classifications": [
                    {"vocabulary": "tsg-themes", "code": "A1", "title": "Arts"},
                    {"vocabulary": "tsg-themes", "code": "Y2", "title": "Youth"},
                ],
            },
            {
                "id": "360G-foo-002",
                "title": "Lunch club",
                "currency": "GBP",
                "amountAwarded": "N/A",
                "awardDate": "2019-06-01",
                "recipientOrganization": [{"id": "GB-COH-456", "name": "Lunch Club CIC"}],
                "fundingOrganization": [{"id": "GB-CHC-999", "name": "Foo Trust"}],
            },
        ]
    }


@pytest.fixture()
def grants_json_bytes(grants_document):
    return json.dumps(grants_document).encode("utf-8")


@pytest.fixture()
def grants_csv_bytes():
    return (
        "Identifier,Title,Description,Currency,Amount Awarded,Award Date,"
        "Recipient Org:Identifier,Recipient Org:Name,Funding Org:Identifier,"
        "Funding Org:Name,Grant Programme:Title\n"
        "360G-bar-1,Youth club,Evening sessions,GBP,\"£1,234.50\",10/04/2019,"
        "GB-CHC-1,Youth Org,GB-CHC-2,Bar Fund,Small grants\n"
        "360G-bar-2,Repairs,Roof,GBP,N/A,11/04/2019,GB-CHC-3,Hall Trust,GB-CHC-2,Bar Fund,\n"
        ",,,,,,,,,,\n"
    ).encode("utf-8")


def _spreadsheet_bytes(engine):
    frame = pd.DataFrame([
        {
            "Identifier": "360G-baz-1",
            "Title": "Sports kit",
            "Currency": "GBP",
            "Amount Awarded": 750,
            "Award Date": "2020-01-15",
            "Recipient Org:Identifier": "GB-CHC-77",
            "Recipient Org:Name": "Town FC",
            "Funding Org:Identifier": "GB-CHC-88",
            "Funding Org:Name": "Baz Foundation",
            "Beneficiary Location:Name": "Leeds",
        },
        {
            "Identifier": "360G-baz-2",
            "Title": "Minibus",
            "Currency": "GBP",
            "Amount Awarded": 12500.5,
            "Award Date": "2020-02-01",
            "Recipient Org:Identifier": "GB-CHC-78",
            "Recipient Org:Name": "Transport Group",
            "Funding Org:Identifier": "GB-CHC-88",
            "Funding Org:Name": "Baz Foundation",
            "Beneficiary Location:Name": None,
        },
    ])
    buffer = io.BytesIO()
    frame.to_excel(buffer, index=False, engine=engine)
    return buffer.getvalue()


@pytest.fixture()
def grants_xlsx_bytes():
    return _spreadsheet_bytes("openpyxl")


@pytest.fixture()
def grants_ods_bytes():
    return _spreadsheet_bytes("odf")
