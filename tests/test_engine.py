"""Tests for the engine entry points."""

from datetime import date

import pytest
from prometheus_client import REGISTRY

from rapprochement import (
    ConfigurationError,
    MatchingError,
    detect_anomalies,
    match_invoices,
    reconcile_bank,
    run_matching,
    update_supplier_history,
)
from rapprochement.domain.enums import AnomalySeverity, AnomalyType, TransactionSource

pytestmark = pytest.mark.unit


def _sample(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.fixture
def invoices(make_invoice):
    return [
        make_invoice(id="f1", supplier_name="ACME", total_amount="1000"),
        make_invoice(id="f2", supplier_name="Orange", total_amount="49.99"),
    ]


@pytest.fixture
def transactions(make_transaction):
    return [
        make_transaction(id="t1", description="PRLV ACME 0456", amount="-1000"),
        make_transaction(id="t2", date="2026-03-03", description="ORANGE SA", amount="-49.00"),
        make_transaction(id="t3", date="2026-03-07", description="Travaux", amount="-2400"),
    ]


class TestReconcileBank:
    """Tests for reconcile_bank."""

    def test_reconciles_rows_and_records_metrics(self):
        before = _sample("rapprochement_matches_total", kind="bank", classification="auto")

        result = reconcile_bank(
            [{"id": "m1", "date": "2026-03-01", "description": "Loyer", "amount": -850}],
            [
                {
                    "id": "b1",
                    "date": "2026-03-02",
                    "description": "VIR LOYER",
                    "amount": -850,
                    "source": TransactionSource.BANK_IMPORT.value,
                }
            ],
        )

        assert result.transactions_to_reconcile == ["m1", "b1"]
        after = _sample("rapprochement_matches_total", kind="bank", classification="auto")
        assert after == before + 1

    def test_none_is_empty(self):
        result = reconcile_bank(None, None)
        assert result.stats()["total_manual"] == 0

    @pytest.mark.parametrize("bad", ["t1", b"t1", {"id": "t1"}, 42])
    def test_non_collection_rejected(self, bad):
        with pytest.raises(MatchingError) as exc_info:
            reconcile_bank(bad, [])
        assert exc_info.value.context["argument"] == "manual_transactions"

    def test_invalid_config_rejected(self):
        with pytest.raises(ConfigurationError):
            reconcile_bank([], [], config={"auto_threshold": 0.5, "suggested_threshold": 0.7})


class TestMatchInvoices:
    """Tests for match_invoices."""

    def test_matches_and_leftovers(self, invoices, transactions):
        result = match_invoices(invoices, transactions)

        assert [m.invoice.id for m in result.auto_matched] == ["f1"]
        assert [m.invoice.id for m in result.suggestions] == ["f2"]
        assert [t.id for t in result.unmatched_transactions] == ["t3"]

    def test_config_overrides(self, invoices, transactions):
        overrides = {"auto_threshold": 0.95, "suggested_threshold": 0.9}
        result = match_invoices(invoices, transactions, config=overrides)

        assert [m.invoice.id for m in result.auto_matched] == ["f1"]
        assert result.suggestions == ()
        assert [i.id for i in result.unmatched_invoices] == ["f2"]


class TestDetectAnomalies:
    """Tests for detect_anomalies."""

    def test_uses_matched_pairs(self, invoices, transactions):
        matching = match_invoices(invoices, transactions)

        result = detect_anomalies(
            transactions, invoices, matching.matched_pairs(), as_of=date(2026, 3, 10)
        )

        orphans = result.of_type(AnomalyType.TRANSACTION_WITHOUT_INVOICE)
        assert [a.transaction_id for a in orphans] == ["t3"]


class TestUpdateSupplierHistory:
    """Tests for the update_supplier_history entry point."""

    def test_accepts_rows(self):
        histories = update_supplier_history(
            [
                {
                    "supplier_name": "EDF",
                    "transaction_patterns": ["prlv edf"],
                    "match_count": 1,
                    "avg_amount": "80",
                }
            ],
            "EDF",
            "PRLV SEPA EDF",
            "-100",
        )

        assert histories["edf"].match_count == 2
        assert histories["edf"].transaction_patterns == ("prlv edf", "prlv sepa edf")


class TestRunMatching:
    """Tests for run_matching."""

    def test_full_run(self, invoices, transactions):
        run = run_matching(transactions, invoices, as_of=date(2026, 3, 10))

        assert [m.invoice.id for m in run.matching.auto_matched] == ["f1"]
        # Only auto matches teach the histories
        assert set(run.histories) == {"acme"}
        assert run.histories["acme"].transaction_patterns == ("prlv acme",)

        # The suggested Orange pair is checked too: 49.99 vs 49.00 is about 2%
        gaps = run.anomalies.of_type(AnomalyType.AMOUNT_GAP)
        assert [(a.invoice_id, a.transaction_id) for a in gaps] == [("f2", "t2")]

        data = run.to_dict()
        assert set(data) == {"matching", "anomalies", "supplier_histories"}
        assert data["supplier_histories"][0]["supplier_normalized"] == "acme"

    def test_histories_grow_across_runs(self, invoices, transactions):
        first = run_matching(transactions, invoices, as_of=date(2026, 3, 10))
        second = run_matching(transactions, invoices, first.histories, as_of=date(2026, 3, 10))

        assert second.histories["acme"].match_count == 2
        assert first.histories["acme"].match_count == 1

    def test_numeric_text_columns(self):
        invoices = [
            {
                "id": inv_id,
                "supplier_name": 4471,
                "invoice_date": "2026-03-01",
                "total_amount": 100,
                "invoice_number": 4521,
            }
            for inv_id in ("i1", "i2")
        ]
        transactions = [
            {"id": "t1", "date": "2026-03-01", "description": 4471, "amount": -100, "category": 6},
            {"id": "t2", "date": "2026-03-05", "amount": -12, "category": 6},
        ]

        run = run_matching(transactions, invoices, as_of=date(2026, 3, 10))

        duplicates = run.anomalies.of_type(AnomalyType.DUPLICATE_INVOICE)
        assert [(a.invoice_id, a.related_id) for a in duplicates] == [("i2", "i1")]
        assert duplicates[0].severity == AnomalySeverity.CRITICAL
        assert [m.transaction.id for m in run.matching.auto_matched] == ["t1"]
        assert set(run.histories) == {"4471"}
