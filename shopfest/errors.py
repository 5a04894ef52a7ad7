from typing import Optional


class DomainError(Exception):
    code = "DOMAIN_ERROR"
    status_code = 400

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(DomainError):
    code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        d = super().to_dict()
        if self.field:
            d["field"] = self.field
        return d


class NotFoundError(DomainError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, id: str):
        super().__init__(f"{resource} with id '{id}' not found")
        self.resource = resource
        self.id = id


class BusinessRuleError(DomainError):
    code = "BUSINESS_RULE_VIOLATION"
    status_code = 400


class ConflictError(DomainError):
    code = "CONFLICT"
    status_code = 409
