from .auth import User, SessionToken, PasswordResetOtp
from .inventory import Product
from .merchants import Merchant
from .sales import Sale, Payment
from .communications import ReminderRecord, Notification
from .audit import AuditLog

__all__ = [
    'User', 'SessionToken', 'PasswordResetOtp',
    'Product',
    'Merchant',
    'Sale', 'Payment',
    'ReminderRecord', 'Notification',
    'AuditLog',
]
