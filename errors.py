"""
Domain errors raised by the store services.

Every error carries the HTTP status it maps to; main.py renders them as
``{"error": message}``.
"""


class StoreError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StoreError):
    status_code = 400


class MissingIdentity(ValidationError):
    def __init__(self, message: str = "userId or guestId required"):
        super().__init__(message)


class EmptyCart(ValidationError):
    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class QuantityFloor(ValidationError):
    def __init__(self, message: str = "Minimum quantity is 1"):
        super().__init__(message)


class Unauthenticated(StoreError):
    status_code = 401


class Unauthorized(StoreError):
    status_code = 403


class NotFound(StoreError):
    status_code = 404

    def __init__(self, message: str = "Not found"):
        super().__init__(message)


class ProductNotFound(NotFound):
    def __init__(self, message: str = "Product not found"):
        super().__init__(message)


class ItemNotFound(NotFound):
    def __init__(self, message: str = "Cart item not found"):
        super().__init__(message)


class OrderNotFound(NotFound):
    def __init__(self, message: str = "Order not found"):
        super().__init__(message)


class ReviewNotFound(NotFound):
    def __init__(self, message: str = "Review not found"):
        super().__init__(message)


class UserNotFound(NotFound):
    def __init__(self, message: str = "User not found"):
        super().__init__(message)


class Conflict(StoreError):
    status_code = 409


class DuplicateReview(Conflict):
    def __init__(self, message: str = "You have already reviewed this product"):
        super().__init__(message)


class DuplicateProduct(Conflict):
    def __init__(self, message: str = "Product already exists"):
        super().__init__(message)


class DuplicateUser(Conflict):
    def __init__(self, message: str = "User already exists"):
        super().__init__(message)


class InternalError(StoreError):
    status_code = 500
