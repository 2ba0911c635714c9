import json
import logging
from pathlib import Path
from typing import List, Union

import config
from dialogue_model import DialogueDocument


class DialogueStorageError(Exception):
    """Base exception for dialogue file operations."""


class DialogueLoadError(DialogueStorageError):
    """Raised when a dialogue file is unreadable or not a valid dialogue."""


class DialogueNotFoundError(DialogueLoadError):
    """Raised when no file exists for the requested dialogue name."""


class DialogueSaveError(DialogueStorageError):
    """Raised when a dialogue cannot be written."""


class DialogueStorage:
    """Keeps one JSON file per dialogue in a single directory."""

    def __init__(self, directory: Union[str, Path] = config.DIALOGUES_DIR):
        self.directory = Path(directory)

    def ensure_directory(self) -> None:
        if not self.directory.is_dir():
            self.directory.mkdir(parents=True, exist_ok=True)
            logging.info(f"Created dialogue directory '{self.directory}'.")

    def path_for(self, name: str) -> Path:
        file_name = config.dialogue_file_name(name)
        if file_name is None:
            raise ValueError("Dialogue name cannot be empty.")
        if Path(name).name != name or name == ".." or "\\" in name:
            raise ValueError(f"Dialogue name '{name}' must not contain path separators.")
        return self.directory / file_name

    def exists(self, name: str) -> bool:
        try:
            return self.path_for(name).is_file()
        except ValueError:
            return False

    def list_saved_document_names(self) -> List[str]:
        if not self.directory.is_dir():
            return []
        return sorted(
            p.stem
            for p in self.directory.glob(f"*{config.DIALOGUE_FILE_EXTENSION}")
            if p.is_file()
        )

    def load_document(self, name: str) -> DialogueDocument:
        if not self.exists(name):
            raise DialogueNotFoundError(f"Dialogue '{name}' not found in '{self.directory}'.")
        path = self.path_for(name)
        logging.info(f"Loading dialogue from: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return DialogueDocument.from_dict(data)
        except (OSError, ValueError) as e:
            # json.JSONDecodeError is a ValueError
            raise DialogueLoadError(f"Could not load dialogue '{name}': {e}") from e

    def save_document(self, document: DialogueDocument) -> Path:
        if not document.name or not document.name.strip():
            raise DialogueSaveError("Dialogue name cannot be empty!")
        try:
            path = self.path_for(document.name)
        except ValueError as e:
            raise DialogueSaveError(str(e)) from e
        self.ensure_directory()
        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(document.to_dict(), f, indent=config.JSON_INDENT, ensure_ascii=False)
        except OSError as e:
            raise DialogueSaveError(f"Could not save dialogue to {path}: {e}") from e
        logging.info(f"Dialogue '{document.name}' saved to {path}.")
        return path

    def delete_document(self, name: str) -> None:
        if not self.exists(name):
            raise DialogueNotFoundError(f"Dialogue file '{name}' not found to delete.")
        path = self.path_for(name)
        try:
            path.unlink()
        except OSError as e:
            raise DialogueStorageError(f"Could not delete {path}: {e}") from e
        logging.info(f"Deleted dialogue file {path}.")
