from .branches import Branch, DocumentSequence
from .customers import Customer, Vehicle
from .catalog import CatalogItem, PricingRule
from .job_orders import JobOrder, JobOrderItem
from .audit import AuditLog
from .auth import UserProfile, UserRoleAssignment, UserBranchAssignment

__all__ = [
    'Branch', 'DocumentSequence',
    'Customer', 'Vehicle',
    'CatalogItem', 'PricingRule',
    'JobOrder', 'JobOrderItem',
    'AuditLog',
    'UserProfile', 'UserRoleAssignment', 'UserBranchAssignment',
]
