"""Middleware package for the management API"""
from motion_funnel.middleware.logging_middleware import RequestLoggingMiddleware

__all__ = ['RequestLoggingMiddleware']
