"""OpsDesk - back-office record view and access-control core.

Browsing and mutating commerce records (orders, returns, exchanges,
users, vendors) with filter/sort/paginate views, bulk actions, polling
refresh and step-up gated masking of protected personal data.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
