"""
Business logic services.

Each service handles one domain area.
"""

from services.size_category_service import SizeCategoryService, get_size_category_service
from services.employee_service import EmployeeService, get_employee_service
from services.order_service import OrderService, get_order_service
from services.cutting_service import CuttingService, get_cutting_service
from services.bundle_service import BundleService, get_bundle_service
from services.loading_service import LoadingService, get_loading_service

__all__ = [
    "SizeCategoryService",
    "get_size_category_service",
    "EmployeeService",
    "get_employee_service",
    "OrderService",
    "get_order_service",
    "CuttingService",
    "get_cutting_service",
    "BundleService",
    "get_bundle_service",
    "LoadingService",
    "get_loading_service",
]
