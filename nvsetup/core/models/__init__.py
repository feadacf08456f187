"""
Domain models — Pydantic types for the orchestrator.

All models are re-exported here for convenient access:

    from nvsetup.core.models import Action, Receipt, PlatformDescriptor
"""

from nvsetup.core.models.action import Action, Receipt
from nvsetup.core.models.platform import PlatformDescriptor

__all__ = [
    "Action",
    "PlatformDescriptor",
    "Receipt",
]
