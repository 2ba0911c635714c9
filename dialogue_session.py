import logging
import random
from typing import List, Optional

from PyQt6.QtCore import QObject, pyqtSignal

import config
from dialogue_graph import DialogueGraphScene
from dialogue_model import DialogueDocument
from dialogue_storage import (
    DialogueLoadError,
    DialogueNotFoundError,
    DialogueSaveError,
    DialogueStorage,
    DialogueStorageError,
)


def generate_dialogue_name() -> str:
    low, high = config.NEW_DIALOGUE_SUFFIX_RANGE
    return f"{config.NEW_DIALOGUE_PREFIX}{random.randint(low, high)}"


class EditorSession(QObject):
    """Owns the open document, its graph projection and the unsaved-changes flag.

    ``prompts`` is whatever answers the user-facing questions: it needs
    ``confirm_discard_unsaved_changes()``, ``confirm_delete(name)``,
    ``notify_info(title, message)`` and ``notify_error(title, message)``.
    """

    dirtyChanged = pyqtSignal(bool)
    documentReplaced = pyqtSignal(str)
    documentListChanged = pyqtSignal(list)

    def __init__(
        self,
        storage: DialogueStorage,
        prompts,
        scene: Optional[DialogueGraphScene] = None,
        parent: Optional[QObject] = None,
    ):
        super().__init__(parent)
        self.storage = storage
        self.prompts = prompts
        self.scene = scene if scene is not None else DialogueGraphScene()
        self._dirty = False
        self.scene.documentChanged.connect(self.mark_dirty)

    @property
    def document(self) -> DialogueDocument:
        return self.scene.document

    # --- Dirty state ---

    def is_dirty(self) -> bool:
        return self._dirty

    def mark_dirty(self):
        if self.scene.is_populating or self._dirty:
            return
        self._dirty = True
        self.dirtyChanged.emit(True)

    def clear_dirty(self):
        if not self._dirty:
            return
        self._dirty = False
        self.dirtyChanged.emit(False)

    def _may_discard_changes(self) -> bool:
        if not self._dirty:
            return True
        return bool(self.prompts.confirm_discard_unsaved_changes())

    # --- Document lifecycle ---

    def set_document_name(self, name: str):
        if name == self.document.name:
            return
        self.document.name = name
        self.mark_dirty()

    def _replace_document(self, document: DialogueDocument):
        self.scene.populate(document)
        self.clear_dirty()
        self.documentReplaced.emit(document.name)

    def new_document(self) -> bool:
        if not self._may_discard_changes():
            logging.info("New dialogue cancelled by user.")
            return False
        document = DialogueDocument(name=generate_dialogue_name())
        self._replace_document(document)
        logging.info(f"Started new dialogue '{document.name}'.")
        return True

    def load_document(self, name: str) -> bool:
        if not self._may_discard_changes():
            logging.info(f"Loading '{name}' cancelled by user.")
            return False

        self.clear_dirty()
        self.scene.clear_graph()
        try:
            document = self.storage.load_document(name)
        except DialogueNotFoundError as e:
            logging.error(f"{e}")
            self.prompts.notify_error("Load Error", f"Dialogue '{name}' could not be found.")
            self._replace_document(DialogueDocument(name=generate_dialogue_name()))
            return False
        except DialogueLoadError as e:
            logging.exception(f"Failed to load dialogue '{name}'")
            self.prompts.notify_error("Load Error", f"Failed to load dialogue '{name}':\n{e}")
            self._replace_document(DialogueDocument(name=generate_dialogue_name()))
            return False

        self._replace_document(document)
        logging.info(f"Loaded dialogue '{document.name}' ({len(document.nodes)} nodes).")
        return True

    def save_document(self) -> bool:
        name = self.document.name
        if not name or not name.strip():
            self.prompts.notify_error("Save Error", "Dialogue name cannot be empty!")
            return False
        try:
            path = self.storage.save_document(self.document)
        except DialogueSaveError as e:
            logging.exception(f"Failed to save dialogue '{name}'")
            self.prompts.notify_error("Save Error", f"Failed to save dialogue:\n{e}")
            return False

        self.clear_dirty()
        self.refresh_document_list()
        self.prompts.notify_info("Save Successful", f"Dialogue '{name}' saved to\n{path}")
        return True

    def delete_document(self) -> bool:
        name = self.document.name
        if not name or not name.strip():
            self.prompts.notify_error("Delete Error", "No dialogue name to delete.")
            return False
        if not self.storage.exists(name):
            self.prompts.notify_error("Delete Error", f"Dialogue file '{name}' not found to delete.")
            return False
        if not self._may_discard_changes():
            return False
        if not self.prompts.confirm_delete(name):
            logging.info(f"Deleting '{name}' cancelled by user.")
            return False

        try:
            self.storage.delete_document(name)
        except DialogueStorageError as e:
            logging.exception(f"Failed to delete dialogue '{name}'")
            self.prompts.notify_error("Delete Error", f"Could not delete dialogue:\n{e}")
            return False

        # Changes were already discarded above.
        self.clear_dirty()
        self.new_document()
        self.refresh_document_list()
        return True

    # --- Saved documents ---

    def list_saved_document_names(self) -> List[str]:
        return self.storage.list_saved_document_names()

    def refresh_document_list(self) -> List[str]:
        names = self.list_saved_document_names()
        self.documentListChanged.emit(names)
        return names
