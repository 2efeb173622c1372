"""
Module: stock_kernel.selectors.approval_selector
Responsibility: Read-only access to material issues and their approvals.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.approval import ApprovalStatus
from stock_kernel.domain.dtos import ApprovalRecord, IssueRecord
from stock_kernel.domain.values import Location
from stock_kernel.exceptions import ApprovalNotFoundError, IssueNotFoundError
from stock_kernel.models.approval import MaterialApproval
from stock_kernel.models.material_issue import MaterialIssue
from stock_kernel.selectors.base import BaseSelector


class ApprovalSelector(BaseSelector[MaterialApproval]):
    """Selector for approvals and issues."""

    def get(self, approval_id: UUID) -> ApprovalRecord:
        approval = self.session.get(MaterialApproval, approval_id)
        if approval is None:
            raise ApprovalNotFoundError(str(approval_id))
        return approval.to_dto()

    def for_issue(self, issue_id: UUID) -> ApprovalRecord:
        approval = self.session.execute(
            select(MaterialApproval).where(MaterialApproval.issue_id == issue_id)
        ).scalar_one_or_none()
        if approval is None:
            raise ApprovalNotFoundError(str(issue_id))
        return approval.to_dto()

    def issue(self, issue_id: UUID) -> IssueRecord:
        issue = self.session.get(MaterialIssue, issue_id)
        if issue is None:
            raise IssueNotFoundError(str(issue_id))
        return issue.to_dto()

    def pending_for(self, assignee: Location) -> list[ApprovalRecord]:
        """PENDING approvals assigned to ``assignee``, oldest first."""
        approvals = self.session.execute(
            select(MaterialApproval)
            .where(
                MaterialApproval.assigned_to_type == assignee.location_type,
                MaterialApproval.assigned_to_id == assignee.location_id,
                MaterialApproval.status == ApprovalStatus.PENDING,
            )
            .order_by(MaterialApproval.created_at)
        ).scalars()
        return [a.to_dto() for a in approvals]
