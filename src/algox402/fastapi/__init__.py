"""
FastAPI middleware for algox402 payment handling
"""

from algox402.fastapi.middleware import X402Middleware, x402_protected

__all__ = ["X402Middleware", "x402_protected"]
