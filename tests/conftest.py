"""
Pytest configuration and shared fixtures.

Key fixtures:
- db: connected DatabaseClient on a fresh SQLite file with the schema created
- catalog: StaticCatalog with a small package/add-on price list
- clock: controllable clock shared by the service and workflow engine
- service: QuoteService wired to the fixtures above
- actor: account executive in the test organization
- openai_api_key: OpenAI API key from environment (live tests only)
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest
import pytest_asyncio

# Add src to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

# Load environment variables
from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / '.env'
if env_file.exists():
    load_dotenv(env_file)

from deal_desk.clients.catalog import StaticCatalog
from deal_desk.clients.database import DatabaseClient
from deal_desk.models import Actor, AddOn, Package, Persona
from deal_desk.service import QuoteService

ORG_ID = 'org_test'
FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def openai_api_key() -> str:
    """Get OpenAI API key from environment."""
    key = os.getenv('OPENAI_API_KEY')
    if not key:
        pytest.skip('OPENAI_API_KEY not set')
    return key


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def packages() -> list[Package]:
    return [
        Package(id='pkg_growth', name='Growth Plan', unit_price=Decimal('20.00')),
        Package(id='pkg_enterprise', name='Enterprise Plan', unit_price=Decimal('45.00')),
        Package(id='pkg_starter', name='Starter', unit_price=Decimal('8.00')),
    ]


@pytest.fixture
def add_ons() -> list[AddOn]:
    return [
        AddOn(id='addon_sso', name='SSO', unit_price=Decimal('10.00')),
        AddOn(id='addon_support', name='Premium Support', unit_price=Decimal('250.00')),
        AddOn(id='addon_audit', name='Audit Log', unit_price=Decimal('99.00')),
    ]


@pytest.fixture
def catalog(packages, add_ons) -> StaticCatalog:
    return StaticCatalog(packages=packages, add_ons=add_ons)


@pytest.fixture
def actor() -> Actor:
    """Account executive submitting quotes."""
    return Actor(user_id='user_ae', org_id=ORG_ID, org_name='Acme Sales', roles={Persona.AE})


@pytest_asyncio.fixture
async def db(tmp_path):
    """DatabaseClient on a throwaway SQLite file."""
    client = DatabaseClient(f'sqlite+aiosqlite:///{tmp_path / "deal_desk.db"}')
    await client.connect()
    await client.create_schema()
    yield client
    await client.close()


@pytest_asyncio.fixture
async def service(db, catalog, clock) -> QuoteService:
    return QuoteService(db, catalog, clock=clock)


@pytest.fixture
def sample_input() -> dict:
    """Scenario B deal: 10% discount on NET 30 terms."""
    return {
        'package_id': 'pkg_growth',
        'seats': 50,
        'discount_percent': 10,
        'add_on_ids': ['addon_sso'],
        'customer_name': 'Globex Corporation',
        'payment_kind': 'NET',
        'net_days': 30,
        'org_id': ORG_ID,
    }
