from __future__ import annotations

from PyQt6.QtCore import QPointF

import config
from dialogue_graph import (
    CAPACITY_MULTI,
    CAPACITY_SINGLE,
    PORT_INPUT,
    PORT_OUTPUT,
    GraphicsEdge,
    GraphicsNode,
    node_position_for_center,
)
from dialogue_model import ChoiceData, DialogueDocument, DialogueNodeData


def _document() -> DialogueDocument:
    """a -> b (choice 1), a -> nowhere (choice 2), b -> missing node, c -> a."""
    document = DialogueDocument(name="Quest")
    document.add_node(
        DialogueNodeData(
            id="a",
            position=(0.0, 0.0),
            choices=[ChoiceData("Yes", "b"), ChoiceData("No", "")],
        )
    )
    document.add_node(
        DialogueNodeData(id="b", position=(400.0, 0.0), choices=[ChoiceData("Huh", "gone")])
    )
    document.add_node(
        DialogueNodeData(id="c", position=(400.0, 300.0), choices=[ChoiceData("Back", "a")])
    )
    return document


def test_populate_builds_one_adapter_per_node(scene) -> None:
    document = _document()

    scene.populate(document)

    assert set(scene.graphics_nodes) == {"a", "b", "c"}
    for node_data in document.nodes:
        graphics_node = scene.get_node(node_data.id)
        assert graphics_node.node_data is node_data
        assert len(graphics_node.choice_ports) == len(node_data.choices)
        assert graphics_node.pos() == QPointF(*node_data.position)


def test_populate_builds_edges_for_resolvable_targets_only(scene) -> None:
    scene.populate(_document())

    assert scene.edge_pairs() == {("a", 0, "b"), ("c", 0, "a")}
    assert len(scene.graphics_edges) == 2
    assert scene.get_node("b").choice_ports[0].edges == []


def test_populate_keeps_dangling_target_in_model(scene) -> None:
    document = _document()

    scene.populate(document)

    assert document.find_node("b").choices[0].target_node_id == "gone"


def test_populate_does_not_signal_changes(scene) -> None:
    changes = []
    scene.documentChanged.connect(lambda: changes.append(True))
    scene.nodeFieldChanged.connect(lambda *args: changes.append(args))

    scene.populate(_document())

    assert changes == []


def test_repopulate_replaces_previous_projection(scene) -> None:
    scene.populate(_document())
    old_node = scene.get_node("a")

    other = DialogueDocument(name="Other")
    other.add_node(DialogueNodeData(id="x"))
    scene.populate(other)

    assert set(scene.graphics_nodes) == {"x"}
    assert scene.graphics_edges == []
    assert old_node.scene() is None
    assert scene.document is other


def test_clear_graph_empties_scene(scene) -> None:
    scene.populate(_document())

    scene.clear_graph()

    assert scene.graphics_nodes == {}
    assert scene.graphics_edges == []
    assert scene.items() == []


def test_ports_have_expected_directions_and_labels(scene) -> None:
    scene.populate(_document())
    graphics_node = scene.get_node("a")

    assert graphics_node.input_port.direction == PORT_INPUT
    assert graphics_node.input_port.capacity == CAPACITY_MULTI
    assert graphics_node.input_port.label_text() == config.INPUT_PORT_LABEL
    assert [p.direction for p in graphics_node.choice_ports] == [PORT_OUTPUT, PORT_OUTPUT]
    assert [p.capacity for p in graphics_node.choice_ports] == [CAPACITY_SINGLE] * 2
    assert [p.label_item.text() for p in graphics_node.choice_ports] == ["Choice 1", "Choice 2"]


def test_edge_links_choice_port_to_target_input(scene) -> None:
    scene.populate(_document())
    edge = scene.get_node("a").choice_ports[0].edges[0]

    assert isinstance(edge, GraphicsEdge)
    assert edge.source_node is scene.get_node("a")
    assert edge.target_node is scene.get_node("b")
    assert edge.input_port is scene.get_node("b").input_port


def test_create_dialogue_node_appends_and_signals(scene) -> None:
    scene.populate(DialogueDocument(name="Empty"))
    changes = []
    scene.documentChanged.connect(lambda: changes.append(True))

    graphics_node = scene.create_dialogue_node(QPointF(50, 60))

    assert isinstance(graphics_node, GraphicsNode)
    assert scene.document.nodes == [graphics_node.node_data]
    assert graphics_node.node_data.speaker == config.DEFAULT_SPEAKER
    assert graphics_node.node_data.text == config.DEFAULT_TEXT
    assert graphics_node.node_data.position == (50.0, 60.0)
    assert graphics_node.choice_ports == []
    assert changes == [True]


def test_node_position_for_center_offsets_by_half_node() -> None:
    position = node_position_for_center(QPointF(1000, 500))

    assert position.x() == 1000 - config.NODE_WIDTH / 2
    assert position.y() == 500 - config.NODE_HEIGHT / 2


def test_populating_twice_gives_same_nodes_and_edges(scene) -> None:
    document = _document()

    scene.populate(document)
    first = (set(scene.graphics_nodes), scene.edge_pairs())
    scene.populate(document)
    second = (set(scene.graphics_nodes), scene.edge_pairs())

    assert first == second
    assert len(scene.graphics_edges) == len(first[1])
