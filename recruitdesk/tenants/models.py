"""
Tenant and team roster models.

A Tenant is a hiring company: the unit of billing and entitlement. The roster
(TeamMember) is owned by the member-invite flow; the billing engine only ever
counts active rows here and compares the count against the plan's member limit.
"""

from django.db import models
from django.utils.text import slugify
from django.utils.translation import gettext_lazy as _
from model_utils.models import TimeStampedModel


class Tenant(TimeStampedModel):
    """A company account holding at most one live subscription at a time."""

    name = models.CharField(
        max_length=255,
        help_text=_("Company name, e.g. 'Acme Recruiting'"),
    )
    slug = models.SlugField(unique=True, blank=True)

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug:
            max_length = self._meta.get_field("slug").max_length
            self.slug = slugify(self.name)[:max_length].rstrip("-")
        super().save(*args, **kwargs)


class TeamMember(TimeStampedModel):
    """
    A person on a tenant's team.

    Uniqueness of (tenant, email) is enforced here, so a racing double invite
    cannot create two rows for the same person even though the seat check
    itself is not a reservation.
    """

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "email"],
                name="uq_team_member_tenant_email",
            ),
        ]
        indexes = [
            models.Index(
                fields=["tenant", "is_active"],
                name="tenants_member_active_idx",
            ),
        ]

    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name="members",
    )
    email = models.EmailField()
    name = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return f"{self.email} in '{self.tenant.name}'"
