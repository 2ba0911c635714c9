import sys
import logging
from functools import partial
from typing import List, Optional

import config

logging.basicConfig(
    level=logging.INFO,
    format=config.LOG_FORMAT,
    datefmt=config.LOG_DATE_FORMAT,
)

from PyQt6.QtWidgets import (
    QApplication,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QSplitter,
    QTextEdit,
    QVBoxLayout,
    QWidget,
)
from PyQt6.QtGui import QCloseEvent
from PyQt6.QtCore import Qt

from dialogue_graph import DialogueGraphScene, DialogueGraphView, GraphicsNode
from dialogue_session import EditorSession
from dialogue_storage import DialogueStorage


class DialogueGraphEditor(QMainWindow):
    def __init__(self, storage: DialogueStorage):
        super().__init__()
        self.scene = DialogueGraphScene(self)
        self.session = EditorSession(storage, self, self.scene, self)
        self.view: Optional[DialogueGraphView] = None
        self.dialogue_list: Optional[QListWidget] = None
        self.name_edit: Optional[QLineEdit] = None
        self.dirty_label: Optional[QLabel] = None
        self.props_group: Optional[QGroupBox] = None
        self.speaker_edit: Optional[QLineEdit] = None
        self.text_edit: Optional[QTextEdit] = None
        self.choices_layout: Optional[QVBoxLayout] = None
        self.add_choice_button: Optional[QPushButton] = None
        self._panel_node: Optional[GraphicsNode] = None
        self.setup_ui()

        self.session.dirtyChanged.connect(self._on_dirty_changed)
        self.session.documentReplaced.connect(self._on_document_replaced)
        self.session.documentListChanged.connect(self._populate_dialogue_list)
        self.scene.selectionChanged.connect(self.update_properties_panel)
        self.scene.structureChanged.connect(self.update_properties_panel)

        storage.ensure_directory()
        self.session.refresh_document_list()
        self.session.new_document()
        logging.info("Dialogue Graph Editor initialized.")

    # --- Prompts used by the session ---

    def confirm_discard_unsaved_changes(self) -> bool:
        reply = QMessageBox.question(
            self,
            "Unsaved Changes",
            "You have unsaved changes. Discard them?",
            QMessageBox.StandardButton.Discard | QMessageBox.StandardButton.Cancel,
            QMessageBox.StandardButton.Cancel,
        )
        return reply == QMessageBox.StandardButton.Discard

    def confirm_delete(self, name: str) -> bool:
        reply = QMessageBox.question(
            self,
            "Delete Dialogue",
            f"Are you sure you want to delete '{name}'?",
            QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No,
            QMessageBox.StandardButton.No,
        )
        return reply == QMessageBox.StandardButton.Yes

    def notify_info(self, title: str, message: str):
        QMessageBox.information(self, title, message)

    def notify_error(self, title: str, message: str):
        QMessageBox.critical(self, title, message)

    # --- UI ---

    def setup_ui(self):
        self.setWindowTitle(config.APP_NAME)
        self.setGeometry(100, 100, 1400, 800)
        self.setMinimumSize(config.WINDOW_MIN_WIDTH, config.WINDOW_MIN_HEIGHT)

        central_widget = QWidget()
        self.setCentralWidget(central_widget)
        main_layout = QVBoxLayout(central_widget)

        toolbar_layout = QHBoxLayout()
        toolbar_layout.addWidget(QLabel("Dialogue Name:"))
        self.name_edit = QLineEdit()
        self.name_edit.textEdited.connect(self._on_name_edited)
        toolbar_layout.addWidget(self.name_edit)
        self.dirty_label = QLabel("*")
        self.dirty_label.setStyleSheet(
            f"color: {config.DIRTY_MARKER_COLOR.name()}; font-weight: bold;"
        )
        self.dirty_label.setVisible(False)
        toolbar_layout.addWidget(self.dirty_label)
        new_button = QPushButton("New")
        new_button.clicked.connect(self.session.new_document)
        save_button = QPushButton("Save")
        save_button.clicked.connect(self.session.save_document)
        delete_button = QPushButton("Delete")
        delete_button.clicked.connect(self.session.delete_document)
        for button in (new_button, save_button, delete_button):
            toolbar_layout.addWidget(button)
        main_layout.addLayout(toolbar_layout)

        splitter = QSplitter(Qt.Orientation.Horizontal)
        main_layout.addWidget(splitter)

        list_group = QGroupBox("Saved Dialogues")
        list_layout = QVBoxLayout(list_group)
        self.dialogue_list = QListWidget()
        self.dialogue_list.itemClicked.connect(self._on_dialogue_item_clicked)
        list_layout.addWidget(self.dialogue_list)
        list_group.setFixedWidth(config.LIST_PANEL_WIDTH)
        splitter.addWidget(list_group)

        self.view = DialogueGraphView(self.scene, self)
        splitter.addWidget(self.view)

        self.props_group = QGroupBox("Node Properties")
        props_layout = QVBoxLayout(self.props_group)
        node_form = QFormLayout()
        self.speaker_edit = QLineEdit()
        self.speaker_edit.textChanged.connect(self._on_speaker_changed_in_panel)
        self.text_edit = QTextEdit()
        self.text_edit.setAcceptRichText(False)
        self.text_edit.setMinimumHeight(100)
        self.text_edit.textChanged.connect(self._on_text_changed_in_panel)
        node_form.addRow("Speaker:", self.speaker_edit)
        node_form.addRow("Text:", self.text_edit)
        props_layout.addLayout(node_form)

        choices_group = QGroupBox("Choices")
        choices_outer = QVBoxLayout(choices_group)
        self.choices_layout = QVBoxLayout()
        choices_outer.addLayout(self.choices_layout)
        self.add_choice_button = QPushButton("Add Choice")
        self.add_choice_button.clicked.connect(self._on_add_choice_clicked)
        choices_outer.addWidget(self.add_choice_button)
        props_layout.addWidget(choices_group)
        props_layout.addStretch()
        self.props_group.setFixedWidth(config.PROPERTIES_PANEL_WIDTH)
        splitter.addWidget(self.props_group)

        splitter.setStretchFactor(1, 1)
        self.update_properties_panel()

    def _update_window_title(self):
        saved_marker = "*" if self.session.is_dirty() else ""
        name = self.session.document.name or "Untitled"
        self.setWindowTitle(f"{config.APP_NAME} - {name}{saved_marker}")

    def _on_name_edited(self, name: str):
        self.session.set_document_name(name)
        self._update_window_title()

    def _on_dirty_changed(self, dirty: bool):
        self.dirty_label.setVisible(dirty)
        self._update_window_title()
        logging.debug(f"Unsaved changes status set to: {dirty}")

    def _on_document_replaced(self, name: str):
        self.name_edit.setText(name)
        self._select_list_item(name)
        self._update_window_title()
        self.update_properties_panel()

    # --- Saved dialogue list ---

    def _populate_dialogue_list(self, names: List[str]):
        self.dialogue_list.blockSignals(True)
        self.dialogue_list.clear()
        for name in names:
            self.dialogue_list.addItem(QListWidgetItem(name))
        self.dialogue_list.blockSignals(False)
        self._select_list_item(self.session.document.name)

    def _select_list_item(self, name: str):
        self.dialogue_list.blockSignals(True)
        self.dialogue_list.clearSelection()
        self.dialogue_list.setCurrentItem(None)
        for i in range(self.dialogue_list.count()):
            item = self.dialogue_list.item(i)
            if item.text() == name:
                self.dialogue_list.setCurrentItem(item)
                break
        self.dialogue_list.blockSignals(False)

    def _on_dialogue_item_clicked(self, item: QListWidgetItem):
        name = item.text()
        if name == self.session.document.name and not self.session.is_dirty():
            return
        if not self.session.load_document(name):
            self._select_list_item(self.session.document.name)

    # --- Properties panel ---

    def get_selected_node(self) -> Optional[GraphicsNode]:
        nodes = [i for i in self.scene.selectedItems() if isinstance(i, GraphicsNode)]
        return nodes[0] if len(nodes) == 1 else None

    def update_properties_panel(self):
        graphics_node = self.get_selected_node()
        self._panel_node = graphics_node
        enabled = graphics_node is not None
        self.props_group.setEnabled(enabled)

        self.speaker_edit.blockSignals(True)
        self.text_edit.blockSignals(True)
        self.speaker_edit.setText(graphics_node.node_data.speaker if enabled else "")
        self.text_edit.setPlainText(graphics_node.node_data.text if enabled else "")
        self.speaker_edit.blockSignals(False)
        self.text_edit.blockSignals(False)

        self._rebuild_choice_rows(graphics_node)

    def _rebuild_choice_rows(self, graphics_node: Optional[GraphicsNode]):
        while self.choices_layout.count():
            layout_item = self.choices_layout.takeAt(0)
            widget = layout_item.widget()
            if widget is not None:
                widget.deleteLater()
        if graphics_node is None:
            return

        for i, choice in enumerate(graphics_node.node_data.choices):
            row = QWidget()
            row_layout = QHBoxLayout(row)
            row_layout.setContentsMargins(0, 0, 0, 0)
            row_layout.addWidget(QLabel(f"{i + 1}."))
            choice_edit = QLineEdit(choice.text)
            choice_edit.textChanged.connect(partial(graphics_node.set_choice_text, choice))
            row_layout.addWidget(choice_edit)

            target_label = QLabel(self._describe_target(choice.target_node_id))
            if choice.target_node_id and self.scene.get_node(choice.target_node_id) is None:
                target_label.setStyleSheet(
                    f"color: {config.MISSING_LINK_TEXT_COLOR.name()};"
                )
            row_layout.addWidget(target_label)

            remove_button = QPushButton("X")
            remove_button.setFixedWidth(24)
            remove_button.clicked.connect(partial(self._on_remove_choice_clicked, choice))
            row_layout.addWidget(remove_button)
            self.choices_layout.addWidget(row)

    def _describe_target(self, target_id: str) -> str:
        if not target_id:
            return "-> (none)"
        target = self.scene.get_node(target_id)
        if target is None:
            return "-> (missing)"
        return f"-> {target.node_data.speaker}"

    def _on_speaker_changed_in_panel(self, text: str):
        if self._panel_node is not None:
            self._panel_node.set_speaker(text)

    def _on_text_changed_in_panel(self):
        if self._panel_node is not None:
            self._panel_node.set_text(self.text_edit.toPlainText())

    def _on_add_choice_clicked(self):
        if self._panel_node is not None:
            self._panel_node.add_choice()

    def _on_remove_choice_clicked(self, choice, checked: bool = False):
        if self._panel_node is not None:
            self._panel_node.remove_choice(choice)

    def closeEvent(self, event: QCloseEvent):
        if not self.session.is_dirty():
            event.accept()
            return
        reply = QMessageBox.question(
            self,
            "Unsaved Changes",
            "You have unsaved changes. Save before closing?",
            QMessageBox.StandardButton.Save
            | QMessageBox.StandardButton.Discard
            | QMessageBox.StandardButton.Cancel,
            QMessageBox.StandardButton.Save,
        )
        if reply == QMessageBox.StandardButton.Save:
            if self.session.save_document():
                event.accept()
            else:
                event.ignore()
        elif reply == QMessageBox.StandardButton.Cancel:
            event.ignore()
        else:
            event.accept()


if __name__ == "__main__":
    app = QApplication(sys.argv)
    app.setApplicationName(config.APP_NAME)
    app.setApplicationVersion(config.APP_VERSION)

    dialogues_dir = sys.argv[1] if len(sys.argv) > 1 else config.DIALOGUES_DIR
    editor = DialogueGraphEditor(DialogueStorage(dialogues_dir))
    editor.show()

    sys.exit(app.exec())
