"""
Middleware Package
Proxy header handling and JSON error rendering
"""
from fund_connect.middleware.error_handlers import register_exception_handlers
from fund_connect.middleware.proxy_headers import ProxyHeadersMiddleware

__all__ = ['register_exception_handlers', 'ProxyHeadersMiddleware']
