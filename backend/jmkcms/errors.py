"""Exception types shared by stores, repositories and handlers."""


class StoreError(Exception):
    """A document store call failed (network, permissions, bad data...)."""


class DocumentNotFound(StoreError):
    """The addressed document does not exist."""

    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"{collection}/{doc_id} does not exist")
        self.collection = collection
        self.doc_id = doc_id


class StoreConfigurationError(StoreError):
    """The store client could not be constructed (missing credentials etc.)."""


class FormValidationError(ValueError):
    """User input failed a documented rule.

    `message` is the localized text shown back to the submitter.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
