"""
Services 패키지

비즈니스 로직 서비스 클래스들을 제공합니다.
"""

from .bill_service import BillService, MarkPaidResult, PaymentWarning, effective_status
from .budget_service import BudgetService
from .gateway import PersistenceGateway, TransactionMaterializer
from .profile_service import ProfileService
from .receipt_service import GeminiReceiptClient, ReceiptService
from .report_service import ReportService
from .rollover import next_due_date

__all__ = [
    "BillService",
    "MarkPaidResult",
    "PaymentWarning",
    "effective_status",
    "BudgetService",
    "PersistenceGateway",
    "TransactionMaterializer",
    "ProfileService",
    "GeminiReceiptClient",
    "ReceiptService",
    "ReportService",
    "next_due_date",
]
