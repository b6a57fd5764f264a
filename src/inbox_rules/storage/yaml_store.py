"""YAML file store for rule set documents."""

from pathlib import Path

import yaml
from pydantic import ValidationError

from inbox_rules.errors import RuleSetLoadError, RuleSetSaveError
from inbox_rules.storage.base import DocumentStore, DocumentT


class YamlDocumentStore(DocumentStore[DocumentT]):
    """Stores one document as a YAML file."""

    def __init__(self, path: Path, document_type: type[DocumentT]) -> None:
        """
        Initialize the store.

        Args:
            path: Path to the YAML file.
            document_type: Pydantic model the file is validated against.
        """
        self.path = path
        self.document_type = document_type

    def load(self) -> DocumentT | None:
        if not self.path.exists():
            return None

        try:
            with open(self.path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
            raise RuleSetLoadError(f"Failed to read {self.path}: {e}", path=self.path) from e

        if not data:
            return None

        try:
            return self.document_type.model_validate(data)
        except ValidationError as e:
            raise RuleSetLoadError(
                f"Invalid document in {self.path}: {e.error_count()} validation error(s)",
                path=self.path,
            ) from e

    def save(self, document: DocumentT) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(
                    document.model_dump(mode="json"),
                    f,
                    default_flow_style=False,
                    sort_keys=False,
                )
            tmp_path.replace(self.path)
        except (OSError, yaml.YAMLError) as e:
            raise RuleSetSaveError(f"Failed to write {self.path}: {e}", path=self.path) from e
