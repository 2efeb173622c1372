"""ApprovalSelector: approvals by id, by issue and by assignee."""

from uuid import uuid4

import pytest

from stock_kernel.domain.approval import ApprovalStatus
from stock_kernel.exceptions import ApprovalNotFoundError, IssueNotFoundError


class TestApprovalSelector:

    def test_lookup_by_id_and_issue(self, approval_selector, coolant, company, technician,
                                    receive, issue):
        receive(coolant, company, 10000)
        material_issue = issue(company, technician, [(coolant, 1, "L")])

        by_issue = approval_selector.for_issue(material_issue.id)
        by_id = approval_selector.get(by_issue.id)
        record = approval_selector.issue(material_issue.id)

        assert by_id == by_issue
        assert record.approval_id == by_issue.id
        assert record.items[0].id == by_issue.items[0].issue_item_id

    def test_pending_for_assignee(
        self, approval_selector, approval_service, coolant, company, branch, technician,
        receive, issue, test_actor_id,
    ):
        receive(coolant, company, 10000)
        first = issue(company, technician, [(coolant, 1, "L")])
        second = issue(company, technician, [(coolant, 1, "L")])
        issue(company, branch, [(coolant, 1, "L")])
        approval_service.approve_issue(first.id, test_actor_id)

        pending = approval_selector.pending_for(technician)

        assert [a.issue_id for a in pending] == [second.id]
        assert all(a.status is ApprovalStatus.PENDING for a in pending)

    def test_missing(self, approval_selector):
        with pytest.raises(ApprovalNotFoundError):
            approval_selector.get(uuid4())
        with pytest.raises(ApprovalNotFoundError):
            approval_selector.for_issue(uuid4())
        with pytest.raises(IssueNotFoundError):
            approval_selector.issue(uuid4())
