"""Kernel service infrastructure."""

from billing_kernel.services.base import BaseService

__all__ = ["BaseService"]
