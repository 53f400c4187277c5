"""RentFlow HTTP API."""

from rentflow.api.router import router

__all__ = ["router"]
