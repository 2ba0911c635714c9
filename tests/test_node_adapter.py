from __future__ import annotations

from PyQt6.QtCore import QPointF

import config
from dialogue_model import ChoiceData, DialogueDocument, DialogueNodeData


def _populated(scene, *choice_texts: str):
    document = DialogueDocument(name="Shop")
    document.add_node(
        DialogueNodeData(id="a", speaker="Merchant", choices=[ChoiceData(t, "") for t in choice_texts])
    )
    document.add_node(DialogueNodeData(id="b", position=(500.0, 0.0)))
    scene.populate(document)
    return scene.get_node("a")


def _spy(scene):
    changes = []
    scene.documentChanged.connect(lambda: changes.append("dirty"))
    scene.nodeFieldChanged.connect(lambda *args: changes.append(args))
    return changes


def _labels(graphics_node):
    return [p.label_item.text() for p in graphics_node.choice_ports]


def test_set_speaker_writes_model_and_signals(scene) -> None:
    graphics_node = _populated(scene)
    changes = _spy(scene)

    graphics_node.set_speaker("Smith")

    assert graphics_node.node_data.speaker == "Smith"
    assert changes == [("a", "speaker", "Merchant", "Smith"), "dirty"]


def test_set_text_writes_model_and_signals(scene) -> None:
    graphics_node = _populated(scene)
    changes = _spy(scene)

    graphics_node.set_text("Welcome!")

    assert graphics_node.node_data.text == "Welcome!"
    assert changes[-1] == "dirty"
    assert changes[0][1:] == ("text", "", "Welcome!")


def test_set_choice_text_targets_the_given_choice(scene) -> None:
    graphics_node = _populated(scene, "Buy", "Sell")
    sell = graphics_node.node_data.choices[1]
    changes = _spy(scene)

    assert graphics_node.set_choice_text(sell, "Trade") is True

    assert [c.text for c in graphics_node.node_data.choices] == ["Buy", "Trade"]
    assert changes == [("a", "choice_text", "Sell", "Trade"), "dirty"]


def test_set_choice_text_for_foreign_choice_is_noop(scene) -> None:
    graphics_node = _populated(scene, "Buy")
    changes = _spy(scene)

    assert graphics_node.set_choice_text(ChoiceData("Buy", ""), "Other") is False
    assert graphics_node.node_data.choices[0].text == "Buy"
    assert changes == []


def test_handle_moved_writes_position_back(scene) -> None:
    graphics_node = _populated(scene)
    changes = _spy(scene)

    graphics_node.setPos(QPointF(120, -40))
    assert graphics_node.node_data.position == (0.0, 0.0)
    graphics_node.handle_moved()

    assert graphics_node.node_data.position == (120.0, -40.0)
    assert changes == ["dirty"]


def test_add_choice_appends_default_choice_and_port(scene) -> None:
    graphics_node = _populated(scene, "Buy")
    changes = _spy(scene)

    choice = graphics_node.add_choice()

    assert graphics_node.node_data.choices[-1] is choice
    assert choice.text == config.DEFAULT_CHOICE_TEXT
    assert choice.target_node_id == ""
    assert len(graphics_node.choice_ports) == 2
    assert _labels(graphics_node) == ["Choice 1", "Choice 2"]
    assert changes == ["dirty"]


def test_remove_middle_choice_relabels_remaining_ports(scene) -> None:
    graphics_node = _populated(scene, "One", "Two", "Three")
    first_port, _, last_port = graphics_node.choice_ports
    two = graphics_node.node_data.choices[1]

    assert graphics_node.remove_choice(two) is True

    assert [c.text for c in graphics_node.node_data.choices] == ["One", "Three"]
    assert graphics_node.choice_ports == [first_port, last_port]
    assert _labels(graphics_node) == ["Choice 1", "Choice 2"]
    assert last_port.index() == 1


def test_remove_choice_resolves_index_at_call_time(scene) -> None:
    graphics_node = _populated(scene)
    first = graphics_node.add_choice()
    second = graphics_node.add_choice()

    graphics_node.remove_choice(first)
    graphics_node.remove_choice(second)

    assert graphics_node.node_data.choices == []
    assert graphics_node.choice_ports == []


def test_remove_unknown_choice_is_silent_noop(scene) -> None:
    graphics_node = _populated(scene, "Buy")
    changes = _spy(scene)

    assert graphics_node.remove_choice(ChoiceData("Buy", "")) is False
    assert len(graphics_node.node_data.choices) == 1
    assert len(graphics_node.choice_ports) == 1
    assert changes == []


def test_remove_connected_choice_drops_its_edge(scene) -> None:
    graphics_node = _populated(scene, "Buy", "Sell")
    target = scene.get_node("b")
    scene.connect_ports(graphics_node.choice_ports[1], target.input_port)
    scene.connect_ports(graphics_node.choice_ports[0], target.input_port)

    graphics_node.remove_choice(graphics_node.node_data.choices[0])

    assert scene.edge_pairs() == {("a", 0, "b")}
    assert len(target.input_port.edges) == 1
    assert graphics_node.node_data.choices[0].target_node_id == "b"


def test_refresh_choices_matches_port_count_and_is_idempotent(scene) -> None:
    graphics_node = _populated(scene, "One", "Two")
    kept_port = graphics_node.choice_ports[0]

    graphics_node.node_data.choices.append(ChoiceData("Three", ""))
    graphics_node.refresh_choices()
    assert len(graphics_node.choice_ports) == 3

    del graphics_node.node_data.choices[1:]
    graphics_node.refresh_choices()
    graphics_node.refresh_choices()

    assert graphics_node.choice_ports == [kept_port]
    assert _labels(graphics_node) == ["Choice 1"]


def test_node_grows_with_choices(scene) -> None:
    graphics_node = _populated(scene)
    assert graphics_node.height == config.NODE_HEIGHT

    for _ in range(10):
        graphics_node.add_choice()

    assert graphics_node.height > config.NODE_HEIGHT
    last_port = graphics_node.choice_ports[-1]
    assert last_port.pos().y() < graphics_node.height


def test_remove_first_choice_shifts_next_choice_to_port_zero(scene) -> None:
    graphics_node = _populated(scene, "One", "Two", "Three")
    second_port = graphics_node.choice_ports[1]

    graphics_node.remove_choice(graphics_node.node_data.choices[0])

    assert _labels(graphics_node) == ["Choice 1", "Choice 2"]
    assert graphics_node.choice_ports[0] is second_port
    assert graphics_node.node_data.choices[0].text == "Two"


def test_handle_moved_writes_back_selected_peers_once(scene) -> None:
    graphics_node = _populated(scene)
    peer = scene.get_node("b")
    graphics_node.setSelected(True)
    peer.setSelected(True)
    changes = _spy(scene)

    graphics_node.setPos(QPointF(10, 10))
    peer.setPos(QPointF(510, 10))
    graphics_node.handle_moved()
    graphics_node.handle_moved()

    assert graphics_node.node_data.position == (10.0, 10.0)
    assert peer.node_data.position == (510.0, 10.0)
    assert changes == ["dirty"]
