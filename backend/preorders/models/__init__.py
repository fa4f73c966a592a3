from .customers import Customer
from .flights import Flight, FLIGHT_STATUSES
from .orders import PreOrder, PreOrderItem, ORDER_STATUSES
from .payments import Payment, PAYMENT_PURPOSES
from .reminders import Reminder, REMINDER_STATUSES, REMINDER_PRIORITIES
from .transactions import BrandTransaction, CONFIRMATION_STATUSES, PAY_STATUSES

__all__ = [
    'Customer',
    'Flight', 'FLIGHT_STATUSES',
    'PreOrder', 'PreOrderItem', 'ORDER_STATUSES',
    'Payment', 'PAYMENT_PURPOSES',
    'Reminder', 'REMINDER_STATUSES', 'REMINDER_PRIORITIES',
    'BrandTransaction', 'CONFIRMATION_STATUSES', 'PAY_STATUSES',
]
