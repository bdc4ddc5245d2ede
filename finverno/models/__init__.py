"""Central model registry — import all models so Alembic autodiscover works."""

from finverno.database import Base  # noqa: F401

from finverno.models.contractor import Contractor  # noqa: F401
from finverno.models.investor import Investor, InvestorAccount, InvestorBankDetails  # noqa: F401
from finverno.models.project import Project, Material, ProjectMaterial  # noqa: F401
from finverno.models.purchase_request import PurchaseRequest, PurchaseRequestItem  # noqa: F401
from finverno.models.invoice import Invoice  # noqa: F401
from finverno.models.takeoff import BoqTakeoff  # noqa: F401
from finverno.models.capital import CapitalTransaction, InvestorPaymentSubmission  # noqa: F401
from finverno.models.audit_log import AuditLog  # noqa: F401
