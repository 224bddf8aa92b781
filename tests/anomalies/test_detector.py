"""Tests for AnomalyDetector."""

from datetime import date
from decimal import Decimal

import pytest

from rapprochement.anomalies import AnomalyDetector, deduplicate, severity_stats, sort_by_severity
from rapprochement.domain.enums import (
    AnomalySeverity,
    AnomalyType,
    InvoiceStatus,
    TransactionStatus,
)
from rapprochement.domain.value_objects import Anomaly, MatchedPair

pytestmark = pytest.mark.unit

AS_OF = date(2026, 3, 10)


@pytest.fixture
def detector(matching_config):
    return AnomalyDetector(matching_config)


def _types(result):
    return [a.type for a in result.anomalies]


class TestDuplicateTransactions:
    """Tests for duplicate transaction detection."""

    def test_same_day_same_amount_same_label(self, detector, make_transaction):
        txs = [
            make_transaction(id="t1", description="Facture EDF", amount="-150"),
            make_transaction(id="t2", description="Facture EDF", amount="-150.00"),
        ]

        result = detector.detect(txs, [], as_of=AS_OF)

        duplicates = result.of_type(AnomalyType.DUPLICATE_TRANSACTION)
        assert len(duplicates) == 1
        assert duplicates[0].transaction_id == "t2"
        assert duplicates[0].related_id == "t1"
        assert duplicates[0].severity == AnomalySeverity.WARNING

    def test_different_label_not_duplicate(self, detector, make_transaction):
        txs = [
            make_transaction(id="t1", description="Facture EDF", amount="-150"),
            make_transaction(id="t2", description="Courses Monoprix", amount="-150"),
        ]
        result = detector.detect(txs, [], as_of=AS_OF)
        assert result.of_type(AnomalyType.DUPLICATE_TRANSACTION) == []

    def test_matched_transactions_excluded(self, detector, make_transaction, make_invoice):
        txs = [
            make_transaction(id="t1", description="Facture EDF", amount="-150"),
            make_transaction(id="t2", description="Facture EDF", amount="-150"),
        ]
        invoices = [make_invoice(id="f1", total_amount="150")]

        result = detector.detect(txs, invoices, [MatchedPair("f1", "t2")], as_of=AS_OF)

        assert result.of_type(AnomalyType.DUPLICATE_TRANSACTION) == []

    def test_sign_ignored(self, detector, make_transaction):
        txs = [
            make_transaction(id="t1", description="Remboursement", amount="-40"),
            make_transaction(id="t2", description="Remboursement", amount="40"),
        ]
        result = detector.detect(txs, [], as_of=AS_OF)
        assert len(result.of_type(AnomalyType.DUPLICATE_TRANSACTION)) == 1


class TestDuplicateInvoices:
    """Tests for duplicate invoice detection."""

    def test_reused_number_is_critical(self, detector, make_invoice):
        invoices = [
            make_invoice(id="f1", invoice_number="FA-001", total_amount="100"),
            make_invoice(
                id="f2", invoice_number="fa-001", invoice_date="2026-03-05", total_amount="120"
            ),
        ]

        result = detector.detect([], invoices, as_of=AS_OF)

        duplicates = result.of_type(AnomalyType.DUPLICATE_INVOICE)
        assert [(a.invoice_id, a.related_id, a.severity) for a in duplicates] == [
            ("f2", "f1", AnomalySeverity.CRITICAL)
        ]

    def test_same_date_and_total_is_warning(self, detector, make_invoice):
        invoices = [make_invoice(id="f1"), make_invoice(id="f2")]

        result = detector.detect([], invoices, as_of=AS_OF)

        duplicates = result.of_type(AnomalyType.DUPLICATE_INVOICE)
        assert [(a.invoice_id, a.severity) for a in duplicates] == [
            ("f2", AnomalySeverity.WARNING)
        ]

    def test_reused_number_and_same_total_keeps_critical(self, detector, make_invoice):
        invoices = [
            make_invoice(id="f1", invoice_number="FA-001"),
            make_invoice(id="f2", invoice_number="FA-001"),
        ]

        result = detector.detect([], invoices, as_of=AS_OF)

        duplicates = result.of_type(AnomalyType.DUPLICATE_INVOICE)
        assert len(duplicates) == 1
        assert duplicates[0].severity == AnomalySeverity.CRITICAL

    def test_different_numbers_same_total_not_duplicate(self, detector, make_invoice):
        invoices = [
            make_invoice(id="f1", invoice_number="FA-2026-001"),
            make_invoice(id="f2", invoice_number="ZZ-9999"),
        ]
        result = detector.detect([], invoices, as_of=AS_OF)
        assert result.of_type(AnomalyType.DUPLICATE_INVOICE) == []

    def test_different_suppliers_not_duplicate(self, detector, make_invoice):
        invoices = [make_invoice(id="f1", supplier_name="EDF"), make_invoice(id="f2")]
        result = detector.detect([], invoices, as_of=AS_OF)
        assert result.of_type(AnomalyType.DUPLICATE_INVOICE) == []


class TestOrphans:
    """Tests for unmatched transactions and overdue invoices."""

    def test_material_expense_without_invoice(self, detector, make_transaction):
        txs = [
            make_transaction(id="big", amount="-500"),
            make_transaction(id="small", date="2026-03-02", amount="-499.99"),
            make_transaction(id="income", date="2026-03-03", amount="5000"),
            make_transaction(
                id="dup", date="2026-03-04", amount="-900", status=TransactionStatus.DUPLICATE
            ),
        ]

        result = detector.detect(txs, [], as_of=AS_OF)

        orphans = result.of_type(AnomalyType.TRANSACTION_WITHOUT_INVOICE)
        assert [a.transaction_id for a in orphans] == ["big"]
        assert orphans[0].severity == AnomalySeverity.INFO

    def test_overdue_validated_invoice(self, detector, make_invoice):
        invoices = [
            make_invoice(id="late", invoice_date="2026-01-29", status=InvoiceStatus.VALIDATED),
            make_invoice(id="recent", invoice_date="2026-03-01", status=InvoiceStatus.VALIDATED),
            make_invoice(id="pending", invoice_date="2026-01-15", supplier_name="EDF"),
        ]

        result = detector.detect([], invoices, as_of=AS_OF)

        orphans = result.of_type(AnomalyType.INVOICE_WITHOUT_TRANSACTION)
        assert [a.invoice_id for a in orphans] == ["late"]
        assert "10 days past due" in orphans[0].description

    def test_due_date_overrides_window(self, detector, make_invoice):
        invoice = make_invoice(
            id="f1",
            invoice_date="2026-03-01",
            due_date="2026-03-05",
            status=InvoiceStatus.VALIDATED,
        )
        result = detector.detect([], [invoice], as_of=AS_OF)
        assert len(result.of_type(AnomalyType.INVOICE_WITHOUT_TRANSACTION)) == 1

    def test_matched_invoice_not_overdue(self, detector, make_invoice, make_transaction):
        invoice = make_invoice(id="f1", invoice_date="2026-01-15", status=InvoiceStatus.VALIDATED)
        tx = make_transaction(id="t1", date="2026-01-16")

        result = detector.detect([tx], [invoice], [MatchedPair("f1", "t1")], as_of=AS_OF)

        assert result.of_type(AnomalyType.INVOICE_WITHOUT_TRANSACTION) == []


class TestMatchedPairs:
    """Tests for gaps on matched pairs."""

    def test_amount_gap(self, detector, make_invoice, make_transaction):
        invoice = make_invoice(id="f1", total_amount="1000")
        tx = make_transaction(id="t1", amount="-950")

        result = detector.detect([tx], [invoice], [MatchedPair("f1", "t1")], as_of=AS_OF)

        gap = result.of_type(AnomalyType.AMOUNT_GAP)[0]
        assert gap.severity == AnomalySeverity.CRITICAL
        assert gap.gap == Decimal("50")
        assert gap.expected_amount == Decimal("1000")
        assert gap.amount == Decimal("950")

    def test_gap_within_tolerance(self, detector, make_invoice, make_transaction):
        invoice = make_invoice(id="f1", total_amount="1000")
        tx = make_transaction(id="t1", amount="-995")

        result = detector.detect([tx], [invoice], [MatchedPair("f1", "t1")], as_of=AS_OF)

        assert result.of_type(AnomalyType.AMOUNT_GAP) == []

    def test_vat_gap(self, detector, make_invoice, make_transaction):
        invoice = make_invoice(
            id="f1", total_amount="1250", amount_excl_tax="1000", vat_amount="200"
        )
        tx = make_transaction(id="t1", amount="-1250")

        result = detector.detect(
            [tx], [invoice], [{"facture_id": "f1", "transaction_id": "t1"}], as_of=AS_OF
        )

        vat = result.of_type(AnomalyType.VAT_GAP)[0]
        assert vat.gap == Decimal("50")
        assert vat.expected_amount == Decimal("1200")
        assert result.of_type(AnomalyType.AMOUNT_GAP) == []

    def test_payment_before_invoice(self, detector, make_invoice, make_transaction):
        invoice = make_invoice(id="f1")
        tx = make_transaction(id="t1", date="2026-02-20")

        result = detector.detect([tx], [invoice], [MatchedPair("f1", "t1")], as_of=AS_OF)

        incoherent = result.of_type(AnomalyType.INCOHERENT_DATE)
        assert [(a.severity, a.transaction_id) for a in incoherent] == [
            (AnomalySeverity.WARNING, "t1")
        ]

    def test_payment_shortly_before_invoice_tolerated(
        self, detector, make_invoice, make_transaction
    ):
        invoice = make_invoice(id="f1")
        tx = make_transaction(id="t1", date="2026-02-26")

        result = detector.detect([tx], [invoice], [MatchedPair("f1", "t1")], as_of=AS_OF)

        assert result.of_type(AnomalyType.INCOHERENT_DATE) == []

    def test_unknown_ids_ignored(self, detector, make_invoice, make_transaction):
        result = detector.detect(
            [make_transaction(id="t1")],
            [make_invoice(id="f1")],
            [MatchedPair("nope", "t1"), MatchedPair("f1", "nope")],
            as_of=AS_OF,
        )
        assert result.anomalies == ()


class TestMissingDates:
    """Tests for missing or unparseable dates."""

    def test_records_without_dates(self, detector, make_invoice, make_transaction):
        result = detector.detect(
            [make_transaction(id="t1", date="someday")],
            [make_invoice(id="f1", invoice_date=None)],
            as_of=AS_OF,
        )

        incoherent = result.of_type(AnomalyType.INCOHERENT_DATE)
        assert {(a.transaction_id, a.invoice_id) for a in incoherent} == {
            ("t1", None),
            (None, "f1"),
        }
        assert all(a.severity == AnomalySeverity.INFO for a in incoherent)


class TestOutliers:
    """Tests for unusually large amounts."""

    def _history(self, make_transaction, category="fournitures"):
        return [
            make_transaction(
                id=f"t{day}", date=f"2026-03-0{day}", amount="-100", category=category
            )
            for day in range(1, 6)
        ]

    def test_far_above_average(self, detector, make_transaction):
        txs = self._history(make_transaction) + [
            make_transaction(id="big", date="2026-03-09", amount="-1500", category="Fournitures")
        ]

        result = detector.detect(txs, [], as_of=AS_OF)

        outlier = result.of_type(AnomalyType.UNUSUALLY_LARGE_AMOUNT)[0]
        assert outlier.transaction_id == "big"
        assert outlier.expected_amount == Decimal("100.00")
        assert outlier.gap == Decimal("1400.00")
        assert outlier.severity == AnomalySeverity.INFO

    def test_not_enough_samples(self, detector, make_transaction):
        txs = self._history(make_transaction)[:4] + [
            make_transaction(id="big", date="2026-03-09", amount="-1500", category="fournitures")
        ]
        result = detector.detect(txs, [], as_of=AS_OF)
        assert result.of_type(AnomalyType.UNUSUALLY_LARGE_AMOUNT) == []

    def test_below_minimum_amount(self, detector, make_transaction):
        txs = [
            make_transaction(id=f"t{day}", date=f"2026-03-0{day}", amount="-10")
            for day in range(1, 6)
        ] + [make_transaction(id="big", date="2026-03-09", amount="-900")]

        result = detector.detect(txs, [], as_of=AS_OF)

        assert result.of_type(AnomalyType.UNUSUALLY_LARGE_AMOUNT) == []

    def test_categories_are_separate(self, detector, make_transaction):
        txs = self._history(make_transaction, category="loyer") + [
            make_transaction(id="big", date="2026-03-09", amount="-1500", category="travaux")
        ]
        result = detector.detect(txs, [], as_of=AS_OF)
        assert result.of_type(AnomalyType.UNUSUALLY_LARGE_AMOUNT) == []


class TestResultHelpers:
    """Tests for deduplication, ordering and stats."""

    def _anomaly(self, severity, anomaly_type=AnomalyType.AMOUNT_GAP, tx="t1"):
        return Anomaly(type=anomaly_type, severity=severity, description="x", transaction_id=tx)

    def test_deduplicate_keeps_most_severe_at_first_position(self):
        first = self._anomaly(AnomalySeverity.INFO)
        other = self._anomaly(AnomalySeverity.INFO, AnomalyType.VAT_GAP)
        worse = self._anomaly(AnomalySeverity.CRITICAL)

        assert deduplicate([first, other, worse]) == [worse, other]

    def test_sort_is_stable(self):
        a = self._anomaly(AnomalySeverity.INFO, tx="a")
        b = self._anomaly(AnomalySeverity.CRITICAL, tx="b")
        c = self._anomaly(AnomalySeverity.INFO, tx="c")
        d = self._anomaly(AnomalySeverity.WARNING, tx="d")

        assert sort_by_severity([a, b, c, d]) == [b, d, a, c]

    def test_stats(self):
        anomalies = [
            self._anomaly(AnomalySeverity.CRITICAL),
            self._anomaly(AnomalySeverity.INFO),
            self._anomaly(AnomalySeverity.INFO),
        ]
        assert severity_stats(anomalies) == {"total": 3, "critical": 1, "warning": 0, "info": 2}

    def test_result_sorted_and_counted(self, detector, make_invoice, make_transaction):
        txs = [
            make_transaction(id="t1", amount="-950"),
            make_transaction(id="t2", date="2026-03-05", amount="-700"),
        ]
        invoices = [make_invoice(id="f1", total_amount="1000")]

        result = detector.detect(txs, invoices, [MatchedPair("f1", "t1")], as_of=AS_OF)

        assert _types(result) == [
            AnomalyType.AMOUNT_GAP,
            AnomalyType.TRANSACTION_WITHOUT_INVOICE,
        ]
        assert result.stats == {"total": 2, "critical": 1, "warning": 0, "info": 1}
        assert result.to_dict()["stats"]["total"] == 2

    def test_config_as_mapping(self):
        detector = AnomalyDetector({"materiality_threshold": "50"})
        assert detector.config.materiality_threshold == Decimal("50")
