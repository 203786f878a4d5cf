from io import StringIO

import pytest
from django.core.management import call_command

from recruitdesk.tenants.models import Tenant
from recruitdesk.tenants.tests.factories import TenantFactory


@pytest.fixture
def catalog_plans(db) -> None:
    """Seed the public plan catalog (free, bronze, silver, gold, enterprise)."""
    call_command("seed_plans", stdout=StringIO())


@pytest.fixture
def tenant(db) -> Tenant:
    return TenantFactory()
