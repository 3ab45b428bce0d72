from .cash_drawer import CashDrawerLedger
from .cash_validation import CashValidationError, CashValidationIssue
from .clients.gateway import HttpSyncGateway
from .clock import Clock, ManualClock, SystemClock
from .config import ConfigError, RegisterConfig, load_config
from .connectivity import ConnectivityMonitor
from .exceptions import (
    ApiError,
    CannotCancelResumedError,
    DrawerAlreadyOpenError,
    DrawerNotOpenError,
    HeldOrderAlreadyResumedError,
    HeldOrderExpiredError,
    HeldOrderNotFoundError,
    HeldOrderNotHeldError,
    HoldLimitReachedError,
    ImportDataError,
    NoActiveShiftError,
    RegisterStateError,
    ShiftAlreadyOpenError,
    TransportError,
)
from .http_client import HttpClient
from .models_cash import CashDrawerState, CashTransaction
from .models_hold import CustomerInfo, HeldOrder, HeldOrderItem
from .models_shift import SaleLine, SaleMetrics, Shift, ShiftReport
from .models_sync import (
    CheckoutResult,
    CheckoutSale,
    InventoryDelta,
    NewInventoryDelta,
    NewOfflineSale,
    OfflineSale,
    OfflineSaleItem,
    SyncPassResult,
    SyncStatus,
)
from .order_hold import OrderHoldStore
from .session import RegisterSession
from .shift_manager import ShiftManager
from .storage import JsonFileStore, MemoryStore, StateStore
from .sync_engine import OfflineSyncEngine, SyncGateway

__all__ = [
    "ApiError",
    "CannotCancelResumedError",
    "CashDrawerLedger",
    "CashDrawerState",
    "CashTransaction",
    "CashValidationError",
    "CashValidationIssue",
    "CheckoutResult",
    "CheckoutSale",
    "Clock",
    "ConfigError",
    "ConnectivityMonitor",
    "CustomerInfo",
    "DrawerAlreadyOpenError",
    "DrawerNotOpenError",
    "HeldOrder",
    "HeldOrderAlreadyResumedError",
    "HeldOrderExpiredError",
    "HeldOrderItem",
    "HeldOrderNotFoundError",
    "HeldOrderNotHeldError",
    "HoldLimitReachedError",
    "HttpClient",
    "HttpSyncGateway",
    "ImportDataError",
    "InventoryDelta",
    "JsonFileStore",
    "ManualClock",
    "MemoryStore",
    "NewInventoryDelta",
    "NewOfflineSale",
    "NoActiveShiftError",
    "OfflineSale",
    "OfflineSaleItem",
    "OfflineSyncEngine",
    "OrderHoldStore",
    "RegisterConfig",
    "RegisterSession",
    "RegisterStateError",
    "SaleLine",
    "SaleMetrics",
    "Shift",
    "ShiftAlreadyOpenError",
    "ShiftManager",
    "ShiftReport",
    "StateStore",
    "SyncGateway",
    "SyncPassResult",
    "SyncStatus",
    "SystemClock",
    "TransportError",
    "load_config",
]
