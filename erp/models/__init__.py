from erp.models.user import User
from erp.models.company import Company
from erp.models.contact import Contact
from erp.models.product import Product
from erp.models.project import Project, Task, Property, ProjectStaff
from erp.models.accounting import Journal, BudgetItem
from erp.models.invoice import Invoice, InvoiceItem
from erp.models.payment import Payment
from erp.models.attendance import Attendance
