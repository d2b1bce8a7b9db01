"""Budget pipeline agents.

This package contains:
- BaseAgent for LLM-backed agents
- Triage, extraction, budget search, construction analyst, estimation,
  validation and architect agents
- ItemResolver (one task -> one line item)
- BudgetOrchestrator and its factory
"""

from agents.base_agent import BaseAgent
from agents.item_resolver import ItemResolver
from agents.orchestrator import BudgetOrchestrator
from agents.factory import create_budget_orchestrator

__all__ = ["BaseAgent", "ItemResolver", "BudgetOrchestrator", "create_budget_orchestrator"]
