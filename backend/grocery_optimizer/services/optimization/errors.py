"""Errors raised by the trip optimizer. Each carries the HTTP status the API layer maps it to."""

from typing import Optional


class TripOptimizationError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"error": self.message}


class InvalidRequest(TripOptimizationError):
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field

    def to_payload(self) -> dict:
        payload = super().to_payload()
        if self.field:
            payload["field"] = self.field
        return payload


class NoStoresFound(TripOptimizationError):
    status_code = 404


class TripNotFound(TripOptimizationError):
    status_code = 404


class NoProductsMatched(TripOptimizationError):
    status_code = 422


class NoPlansGenerated(TripOptimizationError):
    status_code = 422


class PersistenceFailure(TripOptimizationError):
    status_code = 500
