"""
Identity / role oracle.

Resolves an employee id to department, designation level and status.
Employees, departments and designations are HR master data read through
Supabase; nothing here writes to them.
"""

from typing import Optional
import structlog

from config import get_supabase_client
from models.master import EmployeeView
from exceptions import EmployeeNotFoundError, EmployeeInactiveError, DatabaseError

logger = structlog.get_logger(__name__)

ACTIVE = "ACTIVE"


def _to_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


class EmployeeService:
    """Employee lookups for role and seniority gating."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "employees"

    def get_employee(self, emp_id: str) -> Optional[EmployeeView]:
        """
        Get an employee with department and designation resolved.

        Returns:
            EmployeeView or None if not found
        """
        try:
            result = (
                self.db.table(self.table)
                .select(
                    "emp_id, name, department_id, designation_id, status, "
                    "departments(department_name), "
                    "designations(designation_name, designation_level)"
                )
                .eq("emp_id", str(emp_id))
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_employee_failed", emp_id=emp_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            return None

        row = result.data[0]
        department = row.get("departments") or {}
        designation = row.get("designations") or {}

        return EmployeeView(
            emp_id=str(row["emp_id"]),
            name=row.get("name"),
            department_id=_to_int(row.get("department_id")),
            department_name=department.get("department_name"),
            designation_id=_to_int(row.get("designation_id")),
            designation_name=designation.get("designation_name"),
            designation_level=_to_int(designation.get("designation_level")),
            status=row.get("status"),
        )

    def verify_employee(self, emp_id: str) -> EmployeeView:
        """
        Get an employee who is allowed to act.

        Raises:
            EmployeeNotFoundError: Unknown employee
            EmployeeInactiveError: Status is not ACTIVE
        """
        employee = self.get_employee(emp_id)
        if employee is None:
            logger.info("employee_not_found", emp_id=emp_id)
            raise EmployeeNotFoundError(emp_id)

        if (employee.status or "").upper() != ACTIVE:
            logger.info("employee_inactive", emp_id=emp_id, status=employee.status)
            raise EmployeeInactiveError(emp_id, employee.status)

        return employee


# Singleton instance
_employee_service: Optional[EmployeeService] = None


def get_employee_service() -> EmployeeService:
    """Get or create EmployeeService instance."""
    global _employee_service
    if _employee_service is None:
        _employee_service = EmployeeService()
    return _employee_service
