"""ORM models.  Importing this package registers every table on Base.metadata."""

from expense_routing.models.approval import ApprovalModel
from expense_routing.models.expense import ExpenseModel
from expense_routing.models.rule import (
    ApprovalRuleApproverModel,
    ApprovalRuleModel,
    UserApprovalRuleApproverModel,
    UserApprovalRuleModel,
)
from expense_routing.models.user import UserModel

__all__ = [
    "ApprovalModel",
    "ApprovalRuleApproverModel",
    "ApprovalRuleModel",
    "ExpenseModel",
    "UserApprovalRuleApproverModel",
    "UserApprovalRuleModel",
    "UserModel",
]
