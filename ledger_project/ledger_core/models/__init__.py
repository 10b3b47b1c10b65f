from .account import Account
from .accounting_settings import AccountingSettings
from .advance import Advance
from .allocation import Allocation
from .auditlog import AuditLog
from .banking import BankAccount
from .bill import Bill, BillLine
from .company import Company
from .customer import Customer
from .delivery_note import DeliveryNote, DeliveryNoteLine
from .invoice import Invoice, InvoiceLine
from .item import Item, StockMovement
from .journal import JournalEntry, JournalLine
from .opening_balance import OpeningBalance
from .payment import Payment
from .payroll import PayrollPeriod
from .purchase_order import PurchaseOrder, PurchaseOrderLine
from .returns import DocumentReturn
from .sequence import DocumentSequence
from .subscription import RecurringSubscription
from .supplier import Supplier
