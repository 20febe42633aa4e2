"""
Store layer for Telelink.

All shared mutable state lives here. Each store guards its own
maps; swap in a persistent implementation behind the same async interface.
"""

from telelink.repos.account_link_repo import AccountLinkStore
from telelink.repos.link_code_repo import DEMO_CODES, LinkCodeRegistry
from telelink.repos.subscription_repo import SubscriptionIndex

__all__ = [
    "AccountLinkStore",
    "LinkCodeRegistry",
    "SubscriptionIndex",
    "DEMO_CODES",
]
