from datetime import datetime, timedelta, timezone

import pytest

from boatcare.schemas.service_request import RequestStatus, ServiceCategory, SortKey, Urgency
from boatcare.services.request_aggregation import (
    RequestListFilter,
    collation_key,
    filter_requests,
    list_requests,
    sort_requests,
    summarize_requests,
)
from boatcare.services.request_records import PartyRef, RequestRecord

BASE = datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc)
BM = PartyRef("bm1", "Marc Manager")
COMPANY = PartyRef("co1", "Nautic Services")


def _record(n, status, *, urgency=Urgency.NORMAL, boat_manager=None, company=None, client="Claire Client",
            category=ServiceCategory.MAINTENANCE, title="Hull cleaning", boat=None):
    return RequestRecord(
        id=f"r{n:02d}",
        category=category,
        title=title,
        status=status,
        urgency=urgency,
        client=PartyRef(f"c{n}", client),
        created_at=BASE + timedelta(days=n),
        boat_manager=boat_manager,
        company=company,
        boat=boat,
    )


@pytest.fixture
def records():
    return [
        _record(1, RequestStatus.SUBMITTED, urgency=Urgency.URGENT, boat_manager=BM),
        _record(2, RequestStatus.SUBMITTED),
        _record(3, RequestStatus.IN_PROGRESS, boat_manager=BM),
        _record(4, RequestStatus.QUOTE_SENT, boat_manager=BM, company=COMPANY, urgency=Urgency.URGENT),
        _record(5, RequestStatus.SCHEDULED, company=COMPANY),
        _record(6, RequestStatus.READY_TO_BILL, boat_manager=BM),
        _record(7, RequestStatus.READY_TO_BILL, boat_manager=BM, company=COMPANY),
        _record(8, RequestStatus.TO_PAY, company=COMPANY),
        _record(9, RequestStatus.PAID, boat_manager=BM),
        _record(10, RequestStatus.CANCELLED, urgency=Urgency.URGENT),
    ]


class TestSummary:
    def test_counts(self, records):
        summary = summarize_requests(records)
        assert summary.total == 10
        assert summary.by_status["submitted"] == 2
        assert summary.by_status["forwarded"] == 0
        assert sum(summary.by_status.values()) == 10
        assert summary.by_group == {
            "new_requests": 2,
            "in_progress_group": 3,
            "ready_to_bill_group": 2,
            "to_pay_group": 1,
            "paid_group": 1,
            "cancelled_group": 1,
        }
        assert summary.urgent == 3

    def test_billing_by_source(self, records):
        billing = summarize_requests(records).billing_by_source
        assert billing["ready_to_bill"] == {"boat_manager": 1, "company": 1}
        assert billing["to_pay"] == {"boat_manager": 0, "company": 1}
        assert billing["paid"] == {"boat_manager": 1, "company": 0}

    def test_empty(self):
        summary = summarize_requests([])
        assert summary.total == 0
        assert set(summary.by_status) == {status.value for status in RequestStatus}


class TestFilter:
    def test_status_and_urgency_are_mutually_exclusive(self):
        flt = RequestListFilter().select_status("submitted")
        assert flt.status_filter == "submitted"
        flt = flt.select_urgency(Urgency.URGENT)
        assert flt.status_filter is None
        assert flt.urgency == Urgency.URGENT
        flt = flt.select_status("in_progress_group")
        assert flt.urgency is None
        with pytest.raises(ValueError):
            RequestListFilter(status_filter="submitted", urgency=Urgency.URGENT)

    def test_selecting_active_value_clears_it(self):
        flt = RequestListFilter().select_urgency(Urgency.URGENT).select_urgency(Urgency.URGENT)
        assert flt.urgency is None
        flt = RequestListFilter().select_status("paid").select_status("paid")
        assert flt.status_filter is None

    def test_unknown_status_filter_rejected(self):
        with pytest.raises(ValueError):
            RequestListFilter(status_filter="archived")

    def test_group_filter(self, records):
        result = filter_requests(records, RequestListFilter(status_filter="in_progress_group"))
        assert [record.id for record in result] == ["r03", "r04", "r05"]

    def test_urgency_filter(self, records):
        result = filter_requests(records, RequestListFilter(urgency=Urgency.URGENT))
        assert [record.id for record in result] == ["r01", "r04", "r10"]

    def test_search_is_case_insensitive_across_parties(self, records):
        assert len(filter_requests(records, RequestListFilter(search="NAUTIC"))) == 4
        assert len(filter_requests(records, RequestListFilter(search="marc"))) == 6
        assert len(filter_requests(records, RequestListFilter(search="hull"))) == 10
        assert filter_requests(records, RequestListFilter(search="nothing-matches")) == []

    def test_search_matches_boat_and_category_label(self):
        boat_record = _record(1, RequestStatus.SUBMITTED, boat=PartyRef("b1", "Sea Breeze"),
                              category=ServiceCategory.REPAIR, title="Noise")
        assert RequestListFilter(search="breeze").matches(boat_record)
        assert RequestListFilter(search="breakdown").matches(boat_record)


class TestSort:
    def test_default_is_newest_first(self, records):
        assert [record.id for record in sort_requests(records)][:3] == ["r10", "r09", "r08"]

    def test_ascending_date(self, records):
        assert sort_requests(records, SortKey.DATE, ascending=True)[0].id == "r01"

    def test_client_sort_ignores_accents_and_case(self):
        names = ["émile", "Zoé", "adam", "Élodie"]
        items = [_record(i, RequestStatus.SUBMITTED, client=name) for i, name in enumerate(names, start=1)]
        ordered = sort_requests(items, SortKey.CLIENT, ascending=True)
        assert [record.client.name for record in ordered] == ["adam", "Élodie", "émile", "Zoé"]

    def test_missing_company_sorts_as_empty(self, records):
        ordered = sort_requests(records, SortKey.COMPANY, ascending=True)
        assert ordered[0].company is None
        assert ordered[-1].company == COMPANY

    def test_ties_are_deterministic(self, records):
        first = [record.id for record in sort_requests(records, SortKey.BOAT_MANAGER)]
        second = [record.id for record in sort_requests(list(reversed(records)), SortKey.BOAT_MANAGER)]
        assert first == second

    def test_collation_key(self):
        assert collation_key("Élodie")[0] == "elodie"
        assert collation_key("Straße")[0] == "strasse"
        assert collation_key("ﬁn")[0] == "fin"
        assert collation_key(None) == ("", "")

    def test_list_requests_filters_then_sorts(self, records):
        result = list_requests(records, RequestListFilter(search="nautic"), SortKey.DATE, ascending=True)
        assert [record.id for record in result] == ["r04", "r05", "r07", "r08"]
