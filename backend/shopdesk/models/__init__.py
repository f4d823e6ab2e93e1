from .tenancy import Shop
from .staff import Employee, Task, RemoteApproval
from .timekeeping import ShiftSession, ClockInRequest
from .customers import Customer, LoyaltyTransaction
from .security import SecurityEvent

__all__ = [
    'Shop',
    'Employee', 'Task', 'RemoteApproval',
    'ShiftSession', 'ClockInRequest',
    'Customer', 'LoyaltyTransaction',
    'SecurityEvent',
]
