"""
Status Reconciler
Tests — rollout readiness evaluator.

Covers:
    - Verdict rule over fixed section scores
    - Section scoring against real rows (A–F)
    - Flag-flip sequence (G) and rollout phases
    - Determinism and read-only behaviour
"""

import pytest

from status_reconciler.rollout import RolloutFlags
from status_reconciler.services.readiness_evaluator import (
    BLOCKING,
    FAIL,
    FLAG_FLIP_SEQUENCE,
    NOT_READY,
    PASS,
    READY,
    SAFE,
    ReadinessEvaluator,
    SectionResult,
    decide_verdict,
    verdict_from_scores,
)
from status_reconciler.services.coverage_auditor import CoverageAuditor


# ═════════════════════════════════════════════════════════════════════════════
# VERDICT RULE
# ═════════════════════════════════════════════════════════════════════════════

class TestVerdict:
    def test_critical_sections_passing_is_ready(self):
        verdict, blocking = verdict_from_scores({"A": 96, "B": 99, "C": 92, "D": 85, "E": 85, "F": 97})
        assert verdict == READY
        assert blocking == []

    def test_only_critical_scores_given(self):
        assert verdict_from_scores({"A": 96, "B": 99, "C": 92, "F": 97}) == (READY, [])

    def test_two_failures_block(self):
        verdict, blocking = verdict_from_scores({"A": 96, "B": 99, "C": 40, "D": 50, "E": 85, "F": 97})
        assert verdict == NOT_READY
        assert blocking == ["C", "D"]

    def test_single_critical_failure_blocks(self):
        assert decide_verdict({"A": PASS, "B": FAIL, "C": PASS, "D": PASS, "E": PASS, "F": PASS}) == (
            NOT_READY, ["B"],
        )

    def test_single_non_critical_failure_is_tolerated(self):
        assert decide_verdict({"A": PASS, "B": PASS, "C": PASS, "D": PASS, "E": FAIL, "F": PASS})[0] == READY

    def test_two_non_critical_failures_block(self):
        assert decide_verdict({"D": FAIL, "E": FAIL}) == (NOT_READY, ["D", "E"])

    @pytest.mark.parametrize("key, threshold", [("A", 95), ("B", 98), ("C", 90), ("F", 95)])
    def test_threshold_is_inclusive(self, key, threshold):
        assert verdict_from_scores({key: threshold})[0] == READY
        assert verdict_from_scores({key: threshold - 0.01})[0] == NOT_READY

    def test_same_scores_same_verdict(self):
        scores = {"A": 94, "B": 99, "C": 92, "D": 70, "E": 85, "F": 97}
        assert verdict_from_scores(scores) == verdict_from_scores(dict(scores))

    def test_section_g_always_passes(self):
        assert SectionResult("G", None).status == PASS


# ═════════════════════════════════════════════════════════════════════════════
# SECTIONS OVER REAL DATA
# ═════════════════════════════════════════════════════════════════════════════

@pytest.fixture()
def healthy_dataset(make_directory, make_order, make_pr, make_po, make_shipment, make_grn, make_invoice):
    d = make_directory()
    refs = {
        "employee_id": d["employee"].id,
        "company_id": d["company"].id,
        "vendor_id": d["vendor"].id,
    }
    make_order(status="Dispatched", unified_status="DISPATCHED", **refs)
    make_pr("PR-1", "PO_CREATED", unified_pr_status="LINKED_TO_PO", po_number="PO-1", **refs)
    make_po("PO-1", "IN_FULFILMENT", unified_po_status="IN_FULFILMENT")
    make_shipment("SHP-1", "PR-1", "IN_TRANSIT", unified_shipment_status="IN_TRANSIT")
    grn = make_grn("GRN-1", "PO-1", grn_status="RAISED", unified_grn_status="RAISED")
    make_invoice("INV-1", grn.id, "RAISED", unified_invoice_status="RAISED")
    return d


class TestSections:
    def test_empty_dataset_is_ready(self, flags):
        report = ReadinessEvaluator(flags).evaluate()
        assert report.verdict == READY
        for key in "ABCDF":
            assert report.sections[key].score == 100.0

    def test_healthy_dataset(self, flags, healthy_dataset):
        report = ReadinessEvaluator(flags).evaluate()
        assert {k: s.status for k, s in report.sections.items()} == dict.fromkeys("ABCDEFG", PASS)
        assert report.verdict == READY
        assert report.to_dict()["finalVerdict"] == READY

    def test_section_a_matches_coverage_auditor(self, flags, healthy_dataset, make_order):
        make_order(status="Delivered")
        report = ReadinessEvaluator(flags).evaluate()
        assert report.sections["A"].score == CoverageAuditor(flags).run().aggregate_coverage

    def test_section_b_counts_disagreement(self, flags, make_order):
        make_order(status="Delivered", unified_status="DISPATCHED")
        make_order(status="Dispatched", unified_status="DISPATCHED")
        # unmapped legacy value has nothing to disagree with
        make_order(status="Held at depot", unified_status="DISPATCHED")
        section = ReadinessEvaluator(flags).evaluate().sections["B"]
        order_row = next(r for r in section.details if r["entity"] == "Order")
        assert order_row["outOfSync"] == 1
        assert section.score == 66.67

    def test_section_c_counts_broken_edges(self, flags, healthy_dataset, make_shipment, make_invoice):
        make_shipment("SHP-X", "PR-X")
        make_invoice("INV-X", "missing")
        section = ReadinessEvaluator(flags).evaluate().sections["C"]
        broken = {d["edge"]: d["broken"] for d in section.details}
        assert broken == {"PR→PO": 0, "PO→GRN": 0, "GRN→Invoice": 1, "Shipment→PR": 1}
        assert section.status == FAIL

    def test_section_d_ignores_unset_references(self, flags, make_directory, make_order):
        d = make_directory()
        make_order(status="Dispatched", vendor_id=d["vendor"].id)
        make_order(status="Dispatched", vendor_id="deleted-vendor", company_id=d["company"].id)
        section = ReadinessEvaluator(flags).evaluate().sections["D"]
        rows = {r["relationship"]: r for r in section.details}
        assert rows["Order→Employee"]["checked"] == 0
        assert rows["Order→Vendor"] == {"relationship": "Order→Vendor", "checked": 2, "broken": 1, "healthy": 1}
        assert section.score == 66.67

    def test_section_e_levels(self, flags, make_po):
        make_po("PO-1", "CREATED")
        section = ReadinessEvaluator(flags).evaluate().sections["E"]
        levels = {r["entity"]: r["level"] for r in section.details}
        assert levels["PO"] == BLOCKING
        assert levels["Order"] == SAFE
        assert section.score == 83.33

    def test_section_f_stability(self, flags, make_order):
        make_order(status="Dispatched", unified_status="DISPATCHED")
        make_order(status="Dispatched")
        make_order(unified_status="DISPATCHED")
        section = ReadinessEvaluator(flags).evaluate().sections["F"]
        assert section.score == 33.33

    def test_scenario_two_failures(self, flags, healthy_dataset, make_shipment, make_order):
        # C: orphaned shipments drag the cascade score under 90
        for i in range(10):
            make_shipment(f"SHP-X{i}", f"PR-X{i}", "IN_TRANSIT", unified_shipment_status="IN_TRANSIT")
        # D: references to a vendor that no longer exists
        for _ in range(3):
            make_order(status="Dispatched", unified_status="DISPATCHED", vendor_id="gone")
        report = ReadinessEvaluator(flags).evaluate()
        assert report.sections["C"].status == FAIL
        assert report.sections["D"].status == FAIL
        assert report.verdict == NOT_READY
        assert report.blocking == ["C", "D"]

    def test_evaluation_is_deterministic_and_read_only(self, flags, healthy_dataset, make_order):
        make_order(status="Delivered")
        first = ReadinessEvaluator(flags).evaluate().to_dict()
        second = ReadinessEvaluator(flags).evaluate().to_dict()
        for data in (first, second):
            data.pop("timestamp")
        assert first == second


# ═════════════════════════════════════════════════════════════════════════════
# FLAG-FLIP SEQUENCE
# ═════════════════════════════════════════════════════════════════════════════

class TestFlagFlipSequence:
    def test_five_ordered_steps(self):
        assert [s.step for s in FLAG_FLIP_SEQUENCE] == [1, 2, 3, 4, 5]
        assert [s.risk for s in FLAG_FLIP_SEQUENCE] == ["LOW", "MEDIUM", "MEDIUM", "HIGH", "HIGH"]

    def test_initial_phase_nothing_completed(self, flags):
        steps = ReadinessEvaluator(flags).evaluate().sections["G"].details
        assert [s["completed"] for s in steps] == [False] * 5
        assert steps[0]["gateSatisfied"] is True
        # step 2 waits on step 1
        assert steps[1]["gateSatisfied"] is False

    def test_dual_write_phase(self, dual_write_flags):
        steps = ReadinessEvaluator(dual_write_flags).evaluate().sections["G"].details
        assert [s["completed"] for s in steps] == [True, False, False, False, False]
        assert steps[1]["gateSatisfied"] is True

    def test_unified_only_never_completes_schema_step(self):
        flags = RolloutFlags(dual_write_enabled=False, safe_mode=False, read_from_unified=True)
        steps = ReadinessEvaluator(flags).evaluate().sections["G"].details
        assert [s["completed"] for s in steps] == [True, True, True, True, False]

    def test_report_carries_flags(self, dual_write_flags):
        data = ReadinessEvaluator(dual_write_flags).evaluate().to_dict()
        assert data["phase"] == "DUAL_WRITE"
        assert data["flags"]["DUAL_WRITE_ENABLED"] == "true"
