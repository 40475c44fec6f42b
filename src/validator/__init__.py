"""Validator package with the offline structural checks and the security posture audit."""

from .posture import PostureAuditor
from .static import StaticValidator, raise_for_blocking

__all__ = ["PostureAuditor", "StaticValidator", "raise_for_blocking"]
