"""SQLAlchemy ORM models."""

from .account import Account
from .account_provider import AccountProvider
from .connection import Connection
from .entry import Entry
from .external_account import ExternalAccount
from .holding import Holding
from .provider_merchant import ProviderMerchant
from .security import Security
from .security_price import SecurityPrice
from .sync import Sync
from .utils import generate_uuid

__all__ = ["Account", "AccountProvider", "Connection", "Entry", "ExternalAccount", "Holding", "ProviderMerchant", "Security", "SecurityPrice", "Sync", "generate_uuid"]
