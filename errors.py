from typing import Optional


class RegistryError(Exception):
    """Base class for rejected registry calls. No state is changed when raised."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthorizationError(RegistryError):
    pass


class OwnershipError(AuthorizationError):
    def __init__(self, account: Optional[str]):
        super().__init__(f"caller {account!r} is not the registry owner")
        self.account = account


class NotFoundError(RegistryError):
    def __init__(self, product_id: int):
        super().__init__("Product does not exist")
        self.product_id = product_id


class InvalidIdentityError(RegistryError):
    pass


class InvalidArgumentError(RegistryError):
    pass
