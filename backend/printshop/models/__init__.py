from .tenancy import Company, CompanyModule
from .auth import User, RolePermission, SessionToken
from .orders import Order, ProductionLogEntry, QualityInspection
from .notifications import NotificationRecord
from .security import AuditEvent

__all__ = [
    'Company', 'CompanyModule',
    'User', 'RolePermission', 'SessionToken',
    'Order', 'ProductionLogEntry', 'QualityInspection',
    'NotificationRecord',
    'AuditEvent',
]
