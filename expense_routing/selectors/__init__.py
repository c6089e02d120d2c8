"""Read-only query selectors."""

from expense_routing.selectors.base import BaseSelector
from expense_routing.selectors.expense_selector import ExpenseSelector

__all__ = ["BaseSelector", "ExpenseSelector"]
