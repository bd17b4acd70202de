from tinydb import TinyDB

from app.config import get_settings
from app.core.state import ConversationStateStore
from app.core.workflow import WorkflowOrchestrator
from app.db.repository import BudgetRepository, LedgerRepository
from app.llm.insights import build_insights

settings = get_settings()

db = TinyDB(settings.db_path)
ledger = LedgerRepository(db)
budgets = BudgetRepository(db)
insights = build_insights(settings)
state = ConversationStateStore()
orchestrator = WorkflowOrchestrator(ledger, budgets, insights, state, settings)
