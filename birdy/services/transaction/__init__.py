from birdy.services.transaction.install import InstallTransaction
from birdy.services.transaction.models import InstallReport, RemoveReport
from birdy.services.transaction.remove import RemoveTransaction

__all__ = [
    "InstallReport",
    "InstallTransaction",
    "RemoveReport",
    "RemoveTransaction",
]
