class PressureError(Exception):
    """Base for errors that are answered with a JSON body instead of a crash."""

    status_code = 500
    error = "pressure_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"error": self.error, "message": self.message}


class ValidationError(PressureError):
    status_code = 400
    error = "validation_error"


class ResourceCeilingExceeded(ValidationError):
    error = "ceiling_exceeded"

    def __init__(self, name: str, value: int, ceiling: int):
        super().__init__(f"{name}={value} exceeds configured ceiling {ceiling}")
        self.name = name
        self.value = value
        self.ceiling = ceiling


class DrainRejection(PressureError):
    status_code = 503
    error = "draining"

    def __init__(self, message: str = "server is shutting down, not accepting pressure requests"):
        super().__init__(message)
