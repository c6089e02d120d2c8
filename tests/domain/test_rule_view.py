"""Tests for RuleView validation and manager-first normalisation."""

from uuid import uuid4

import pytest

from expense_routing.domain.rules import (
    ApprovalType,
    RuleApprover,
    RuleSource,
    RuleView,
    build_rule_view,
)
from expense_routing.exceptions import InvalidRuleConfigurationError


def make_view(approval_type="SEQUENTIAL", approvers=(), **kw) -> RuleView:
    return build_rule_view(
        rule_id=uuid4(),
        source=RuleSource.COMPANY,
        name="rule",
        approval_type=approval_type,
        approvers=list(approvers),
        **kw,
    )


class TestBuildRuleView:
    def test_approvers_sorted_by_sequence_order(self):
        a, b, c = uuid4(), uuid4(), uuid4()
        view = make_view(approvers=[
            RuleApprover(c, 3), RuleApprover(a, 1), RuleApprover(b, 2),
        ])
        assert view.approver_ids == (a, b, c)
        assert view.approver_at(2).approver_id == b
        assert view.approver_at(4) is None

    def test_unknown_type(self):
        with pytest.raises(InvalidRuleConfigurationError, match="unknown approval_type"):
            make_view("UNANIMOUS")

    def test_type_accepts_enum(self):
        view = make_view(ApprovalType.SPECIFIC_APPROVER, specific_approver_id=uuid4())
        assert view.approval_type is ApprovalType.SPECIFIC_APPROVER


class TestRuleValidation:
    @pytest.mark.parametrize("kind", ["PERCENTAGE", "HYBRID"])
    def test_threshold_required(self, kind):
        with pytest.raises(InvalidRuleConfigurationError, match="percentage_threshold"):
            make_view(kind, approvers=[RuleApprover(uuid4(), 1)], specific_approver_id=uuid4())

    @pytest.mark.parametrize("threshold", [0, 101, -5])
    def test_threshold_range(self, threshold):
        with pytest.raises(InvalidRuleConfigurationError, match="1..100"):
            make_view("PERCENTAGE", percentage_threshold=threshold)

    @pytest.mark.parametrize("kind", ["SPECIFIC_APPROVER", "HYBRID"])
    def test_specific_approver_required(self, kind):
        with pytest.raises(InvalidRuleConfigurationError, match="specific_approver_id"):
            make_view(kind, percentage_threshold=50)

    def test_duplicate_sequence_order(self):
        with pytest.raises(InvalidRuleConfigurationError, match="strictly increase"):
            make_view(approvers=[RuleApprover(uuid4(), 1), RuleApprover(uuid4(), 1)])

    def test_zero_sequence_order(self):
        with pytest.raises(InvalidRuleConfigurationError):
            make_view(approvers=[RuleApprover(uuid4(), 0)])

    def test_error_is_validation_code(self):
        with pytest.raises(InvalidRuleConfigurationError) as exc_info:
            make_view("PERCENTAGE")
        assert exc_info.value.code == "VALIDATION_ERROR"

    def test_sparse_orders_are_valid(self):
        view = make_view(approvers=[RuleApprover(uuid4(), 1), RuleApprover(uuid4(), 3)])
        assert [a.sequence_order for a in view.approvers] == [1, 3]


class TestManagerFirst:
    def test_manager_prepended_and_renumbered(self):
        a, b, mgr = uuid4(), uuid4(), uuid4()
        view = make_view(
            approvers=[RuleApprover(a, 2), RuleApprover(b, 5, is_required=True)],
            is_manager_approver=True,
        )

        result = view.with_manager_first(mgr)

        assert result.approver_ids == (mgr, a, b)
        assert [x.sequence_order for x in result.approvers] == [1, 2, 3]
        assert result.approvers[2].is_required is True

    def test_flag_off_leaves_rule_alone(self):
        view = make_view(approvers=[RuleApprover(uuid4(), 1)])
        assert view.with_manager_first(uuid4()) is view

    def test_no_manager(self):
        view = make_view(approvers=[RuleApprover(uuid4(), 1)], is_manager_approver=True)
        assert view.with_manager_first(None) is view

    def test_manager_already_listed(self):
        mgr = uuid4()
        view = make_view(
            approvers=[RuleApprover(uuid4(), 1), RuleApprover(mgr, 2)],
            is_manager_approver=True,
        )
        assert view.with_manager_first(mgr) is view
