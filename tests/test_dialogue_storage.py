from __future__ import annotations

import json

import pytest

from dialogue_model import ChoiceData, DialogueDocument, DialogueNodeData
from dialogue_storage import (
    DialogueLoadError,
    DialogueNotFoundError,
    DialogueSaveError,
    DialogueStorage,
)


def _document(name: str = "Tavern") -> DialogueDocument:
    document = DialogueDocument(name=name)
    document.add_node(
        DialogueNodeData(
            id="a",
            speaker="Barkeep",
            text="What'll it be? é",
            position=(1.5, -2.0),
            choices=[ChoiceData("Ale", "b"), ChoiceData("Leave", "")],
        )
    )
    document.add_node(DialogueNodeData(id="b", speaker="Barkeep", text="Here."))
    return document


def test_save_then_load_returns_equal_document(tmp_path) -> None:
    storage = DialogueStorage(tmp_path / "Dialogues")

    path = storage.save_document(_document())

    assert path == tmp_path / "Dialogues" / "Tavern.json"
    assert storage.load_document("Tavern") == _document()


def test_saved_file_layout(tmp_path) -> None:
    storage = DialogueStorage(tmp_path)
    path = storage.save_document(_document())

    data = json.loads(path.read_text(encoding="utf-8"))

    assert data["name"] == "Tavern"
    assert data["nodes"][0]["choices"][0] == {"text": "Ale", "targetNodeId": "b"}
    assert "é" in path.read_text(encoding="utf-8")


def test_list_saved_document_names_sorted(tmp_path) -> None:
    storage = DialogueStorage(tmp_path)
    for name in ("Zed", "alpha", "Mid"):
        storage.save_document(DialogueDocument(name=name))
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    assert storage.list_saved_document_names() == sorted(["Zed", "alpha", "Mid"])


def test_list_missing_directory_is_empty(tmp_path) -> None:
    assert DialogueStorage(tmp_path / "missing").list_saved_document_names() == []


@pytest.mark.parametrize("name", ["", "   "])
def test_save_rejects_blank_name(tmp_path, name) -> None:
    storage = DialogueStorage(tmp_path)

    with pytest.raises(DialogueSaveError):
        storage.save_document(DialogueDocument(name=name))
    assert list(tmp_path.iterdir()) == []


def test_load_missing_raises_not_found(tmp_path) -> None:
    storage = DialogueStorage(tmp_path)

    with pytest.raises(DialogueNotFoundError):
        storage.load_document("Nope")


@pytest.mark.parametrize("content", ["{not json", "[1, 2]", '{"nodes": 5}'])
def test_load_invalid_file_raises_load_error(tmp_path, content) -> None:
    (tmp_path / "Bad.json").write_text(content, encoding="utf-8")
    storage = DialogueStorage(tmp_path)

    with pytest.raises(DialogueLoadError):
        storage.load_document("Bad")


def test_delete_document(tmp_path) -> None:
    storage = DialogueStorage(tmp_path)
    storage.save_document(_document())

    storage.delete_document("Tavern")

    assert not storage.exists("Tavern")
    with pytest.raises(DialogueNotFoundError):
        storage.delete_document("Tavern")


@pytest.mark.parametrize("name", ["../escape", "a/b", "a\\b", ".."])
def test_save_rejects_names_with_path_parts(tmp_path, name) -> None:
    storage = DialogueStorage(tmp_path / "Dialogues")

    with pytest.raises(DialogueSaveError):
        storage.save_document(DialogueDocument(name=name))

    assert not storage.exists(name)
    assert list(tmp_path.rglob("*.json")) == []
    with pytest.raises(DialogueNotFoundError):
        storage.load_document(name)
