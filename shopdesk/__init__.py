"""Storefront admin order management: lifecycle, bulk actions, queries and analytics"""

__version__ = "0.1.0"
