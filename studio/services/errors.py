"""Lookup errors raised to the HTTP layer (mapped to 404)."""


class NotFoundError(LookupError):
    entity = "Entity"

    def __init__(self, entity_id: str):
        super().__init__(f"{self.entity} not found: {entity_id}")
        self.entity_id = entity_id


class ProductNotFoundError(NotFoundError):
    entity = "Product"


class IntentNotFoundError(NotFoundError):
    entity = "Rendering intent"


class JobNotFoundError(NotFoundError):
    entity = "Job"
