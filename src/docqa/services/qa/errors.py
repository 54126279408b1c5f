from __future__ import annotations


class QAError(RuntimeError):
    pass


class InputError(QAError):
    """Malformed request; reported to the caller before any retrieval happens."""


class CollaboratorUnavailable(QAError):
    """A storage, catalog, index or endpoint call failed."""


class ObjectNotFound(CollaboratorUnavailable):
    pass


class StorageUnavailable(CollaboratorUnavailable):
    pass


class CatalogUnavailable(CollaboratorUnavailable):
    pass


class SearchIndexError(CollaboratorUnavailable):
    pass


class DocumentNotFound(CollaboratorUnavailable):
    pass


class RetrievalUnavailable(QAError):
    pass


class SynthesisUnavailable(QAError):
    pass
