from .batch_repository import BatchRepository
from .department_repository import DepartmentRepository
from .incoming_stock_repository import IncomingStockRepository
from .item_repository import ItemRepository
from .notification_repository import NotificationRepository
from .request_repository import RequestRepository
from .sequence_repository import SequenceRepository
from .user_repository import UserRepository

__all__ = [
    "BatchRepository",
    "DepartmentRepository",
    "IncomingStockRepository",
    "ItemRepository",
    "NotificationRepository",
    "RequestRepository",
    "SequenceRepository",
    "UserRepository",
]
