import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PyQt6.QtWidgets import QApplication

from dialogue_graph import DialogueGraphScene


@pytest.fixture(scope="session")
def qapp():
    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    yield app


@pytest.fixture
def scene(qapp):
    graph_scene = DialogueGraphScene()
    yield graph_scene
    graph_scene.clear_graph()
