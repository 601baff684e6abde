class RecordsError(Exception):
    """Base class for errors raised by the document records core."""


class DocumentNotFound(RecordsError):
    def __init__(self, document_id):
        super().__init__(f"Document {document_id} not found")
        self.document_id = document_id


class ExternalServiceFailure(RecordsError, RuntimeError):
    """A call to the document-understanding service failed or was unusable."""


class InvalidTransition(RecordsError):
    pass
