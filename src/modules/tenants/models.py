"""Tenant (cook storefront) model.

Only the settings the order engine consumes live here.  Branding,
routing and catalog data belong to other bounded contexts.
"""

from __future__ import annotations

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from modules.core.models import BaseModel


class Tenant(BaseModel):
    """A cook's storefront on the marketplace.

    ``cancellation_window_minutes`` is the tenant-level override for how
    long clients may cancel a paid order.  ``None`` means "use the platform
    default".  The value is read exactly once per order, at creation time.
    """

    name: models.CharField = models.CharField(max_length=150)
    slug: models.SlugField = models.SlugField(max_length=80, unique=True)
    cook: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="tenants",
        null=True,
        blank=True,
    )
    cancellation_window_minutes: models.PositiveIntegerField = (
        models.PositiveIntegerField(
            null=True,
            blank=True,
            validators=[MinValueValidator(0), MaxValueValidator(24 * 60)],
        )
    )
    is_active: models.BooleanField = models.BooleanField(default=True)

    class Meta:
        db_table = "tenants"
        ordering = ["name"]

    def effective_cancellation_window(self) -> int:
        """Tenant override if set, else the platform default."""
        if self.cancellation_window_minutes is not None:
            return self.cancellation_window_minutes
        return settings.ORDER_DEFAULT_CANCELLATION_WINDOW_MINUTES

    def __str__(self) -> str:
        return self.name
