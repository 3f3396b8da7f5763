"""
Xano connection layer.

All persistence lives behind the Xano REST API; this package wraps it with a
requests session that injects the bearer token and maps auth failures to
XanoUnauthorizedError.
"""
from planner.xano.api import XanoAPI
from planner.xano.exceptions import XanoAPIError, XanoUnauthorizedError

__all__ = [
    'XanoAPI',
    'XanoAPIError',
    'XanoUnauthorizedError',
]
