from .tenancy import Organization
from .customers import Customer, Device, Technician
from .inventory import InventoryItem
from .repairs import RepairTicket, RepairItem
from .reference import Currency, TaxRate
from .documents import Quote, Invoice

__all__ = [
    'Organization',
    'Customer', 'Device', 'Technician',
    'InventoryItem',
    'RepairTicket', 'RepairItem',
    'Currency', 'TaxRate',
    'Quote', 'Invoice',
]
