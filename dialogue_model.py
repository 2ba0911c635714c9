import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import config


def new_node_id() -> str:
    return str(uuid.uuid4())


def _parse_position(pos_data: Any, node_id: str) -> Tuple[float, float]:
    x_key = config.get_project_key("x")
    y_key = config.get_project_key("y")
    try:
        if isinstance(pos_data, dict):
            return (float(pos_data.get(x_key, 0.0)), float(pos_data.get(y_key, 0.0)))
        if isinstance(pos_data, (list, tuple)) and len(pos_data) == 2:
            return (float(pos_data[0]), float(pos_data[1]))
    except (ValueError, TypeError):
        logging.warning(
            f"Could not parse position data {pos_data} for node {node_id}. Using default."
        )
        return (0.0, 0.0)
    if pos_data is not None:
        logging.warning(
            f"Invalid position type {type(pos_data)} for node {node_id}. Using default."
        )
    return (0.0, 0.0)


@dataclass
class ChoiceData:
    text: str = ""
    target_node_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            config.get_project_key("choice_text"): self.text,
            config.get_project_key("target_node_id"): self.target_node_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChoiceData":
        if not isinstance(data, dict):
            raise ValueError("Choice data must be a dictionary")
        text = data.get(config.get_project_key("choice_text"), "")
        target = data.get(config.get_project_key("target_node_id"), "")
        return cls(
            text="" if text is None else str(text),
            target_node_id="" if target is None else str(target),
        )


@dataclass
class DialogueNodeData:
    """One dialogue line: who speaks, what they say, where it sits and where it leads."""

    id: str
    speaker: str = ""
    text: str = ""
    position: Tuple[float, float] = (0.0, 0.0)
    choices: List[ChoiceData] = field(default_factory=list)

    @classmethod
    def create(cls, position: Tuple[float, float]) -> "DialogueNodeData":
        return cls(
            id=new_node_id(),
            speaker=config.DEFAULT_SPEAKER,
            text=config.DEFAULT_TEXT,
            position=(float(position[0]), float(position[1])),
            choices=[],
        )

    def index_of_choice(self, choice: ChoiceData) -> int:
        # Choices compare by value, two untouched "New Choice" rows are equal.
        for index, existing in enumerate(self.choices):
            if existing is choice:
                return index
        return -1

    def to_dict(self) -> Dict[str, Any]:
        return {
            config.get_project_key("id"): self.id,
            config.get_project_key("speaker"): self.speaker,
            config.get_project_key("text"): self.text,
            config.get_project_key("position"): {
                config.get_project_key("x"): self.position[0],
                config.get_project_key("y"): self.position[1],
            },
            config.get_project_key("choices"): [c.to_dict() for c in self.choices],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DialogueNodeData":
        if not isinstance(data, dict):
            raise ValueError("Node data must be a dictionary")
        node_id = data.get(config.get_project_key("id"))
        if not node_id:
            raise ValueError("Node data missing ID.")
        node_id = str(node_id)
        speaker = data.get(config.get_project_key("speaker"), "")
        text = data.get(config.get_project_key("text"), "")
        node = cls(
            id=node_id,
            speaker="" if speaker is None else str(speaker),
            text="" if text is None else str(text),
            position=_parse_position(data.get(config.get_project_key("position")), node_id),
        )

        choices_data = data.get(config.get_project_key("choices"), [])
        if isinstance(choices_data, list):
            for i, c in enumerate(choices_data):
                try:
                    node.choices.append(ChoiceData.from_dict(c))
                except ValueError:
                    logging.warning(
                        f"Invalid choice format (item {i}: '{c}') for node '{node_id}'. Skipping choice."
                    )
        elif choices_data is not None:
            logging.warning(
                f"Invalid choices format ('{choices_data}') for node '{node_id}'. Setting to empty list."
            )
        return node


@dataclass
class DialogueDocument:
    """A named dialogue tree. Nodes keep insertion order so saved files stay stable."""

    name: str = ""
    nodes: List[DialogueNodeData] = field(default_factory=list)

    def add_node(self, node: DialogueNodeData) -> None:
        if self.find_node(node.id) is not None:
            raise ValueError(f"Duplicate node ID '{node.id}'")
        self.nodes.append(node)

    def remove_node(self, node_id: str) -> bool:
        """Removes a node and clears every choice that pointed at it.

        Returns False (and changes nothing) when the id is unknown.
        """
        node = self.find_node(node_id)
        if node is None:
            return False
        self.nodes = [n for n in self.nodes if n is not node]
        for other in self.nodes:
            for choice in other.choices:
                if choice.target_node_id == node_id:
                    choice.target_node_id = ""
                    logging.debug(
                        f"Cleared link from '{other.id}' to deleted node '{node_id}'."
                    )
        return True

    def find_node(self, node_id: str) -> Optional[DialogueNodeData]:
        if not node_id:
            return None
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def to_dict(self) -> Dict[str, Any]:
        return {
            config.get_project_key("name"): self.name,
            config.get_project_key("nodes"): [n.to_dict() for n in self.nodes],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DialogueDocument":
        if not isinstance(data, dict):
            raise ValueError("Dialogue data must be a dictionary")
        name = data.get(config.get_project_key("name"), "")
        document = cls(name="" if name is None else str(name))
        nodes_data = data.get(config.get_project_key("nodes"), [])
        if not isinstance(nodes_data, list):
            raise ValueError(
                f"Invalid format: Nodes data ('{config.get_project_key('nodes')}') is not a list."
            )
        for node_dict in nodes_data:
            document.add_node(DialogueNodeData.from_dict(node_dict))
        return document
