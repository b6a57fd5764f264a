"""Base document store interface."""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pydantic import BaseModel

DocumentT = TypeVar("DocumentT", bound=BaseModel)


class DocumentStore(ABC, Generic[DocumentT]):
    """Abstract load/save collaborator for one versioned document."""

    @abstractmethod
    def load(self) -> DocumentT | None:
        """
        Load the stored document.

        Returns:
            The document, or None if nothing has been saved yet.

        Raises:
            RuleSetLoadError: If the stored data cannot be read or is invalid.
        """
        ...

    @abstractmethod
    def save(self, document: DocumentT) -> None:
        """
        Replace the stored document with a new snapshot.

        Raises:
            RuleSetSaveError: If the snapshot cannot be written.
        """
        ...


class MemoryDocumentStore(DocumentStore[DocumentT]):
    """Keeps the last saved snapshot in memory."""

    def __init__(self, document: DocumentT | None = None) -> None:
        self.document = document
        self.save_count = 0

    def load(self) -> DocumentT | None:
        return self.document.model_copy(deep=True) if self.document else None

    def save(self, document: DocumentT) -> None:
        self.document = document.model_copy(deep=True)
        self.save_count += 1
