"""Middleware package for FastAPI application"""
from alerting.middleware.logging_middleware import RequestLoggingMiddleware

__all__ = ['RequestLoggingMiddleware']
