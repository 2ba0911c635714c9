import math
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from PyQt6.QtWidgets import (
    QGraphicsEllipseItem,
    QGraphicsItem,
    QGraphicsLineItem,
    QGraphicsScene,
    QGraphicsSceneContextMenuEvent,
    QGraphicsSimpleTextItem,
    QGraphicsView,
    QMenu,
    QStyleOptionGraphicsItem,
    QWidget,
)
from PyQt6.QtGui import (
    QBrush,
    QKeyEvent,
    QKeySequence,
    QMouseEvent,
    QPainter,
    QPainterPath,
    QPainterPathStroker,
    QPen,
    QPolygonF,
    QWheelEvent,
)
from PyQt6.QtCore import QLineF, QPoint, QPointF, QRectF, Qt, pyqtSignal

import config
from dialogue_model import ChoiceData, DialogueDocument, DialogueNodeData

PORT_INPUT = "input"
PORT_OUTPUT = "output"
CAPACITY_SINGLE = "single"
CAPACITY_MULTI = "multi"


def node_position_for_center(center: QPointF) -> QPointF:
    """Top-left position that puts a default-sized node's centre on `center`."""
    return QPointF(
        center.x() - config.NODE_WIDTH / 2.0, center.y() - config.NODE_HEIGHT / 2.0
    )


class GraphicsPort(QGraphicsEllipseItem):
    def __init__(self, node: "GraphicsNode", direction: str, capacity: str):
        r = config.PORT_RADIUS
        super().__init__(-r, -r, 2 * r, 2 * r, node)
        self.node = node
        self.direction = direction
        self.capacity = capacity
        self.edges: List["GraphicsEdge"] = []
        self._is_compatible_highlighted = False
        self.setZValue(2)
        self.label_item = QGraphicsSimpleTextItem(self)
        self.label_item.setBrush(QBrush(config.PORT_LABEL_COLOR))
        self._update_visuals()
        self.refresh_label()

    def index(self) -> int:
        if self.direction == PORT_INPUT:
            return -1
        return self.node.choice_index_of_port(self)

    def label_text(self) -> str:
        if self.direction == PORT_INPUT:
            return config.INPUT_PORT_LABEL
        return config.CHOICE_PORT_LABEL.format(number=self.index() + 1)

    def refresh_label(self):
        self.label_item.setText(self.label_text())
        label_rect = self.label_item.boundingRect()
        gap = config.PORT_RADIUS + 4.0
        if self.direction == PORT_INPUT:
            self.label_item.setPos(gap, -label_rect.height() / 2.0)
        else:
            self.label_item.setPos(-gap - label_rect.width(), -label_rect.height() / 2.0)

    def add_edge(self, edge: "GraphicsEdge"):
        if not any(e is edge for e in self.edges):
            self.edges.append(edge)
            self._update_visuals()

    def remove_edge(self, edge: "GraphicsEdge"):
        self.edges = [e for e in self.edges if e is not edge]
        self._update_visuals()

    def set_compatible_highlight(self, highlighted: bool):
        self._is_compatible_highlighted = highlighted
        self._update_visuals()

    def _update_visuals(self):
        color = config.PORT_CONNECTED_COLOR if self.edges else config.PORT_COLOR
        self.setBrush(QBrush(color))
        if self._is_compatible_highlighted:
            self.setPen(QPen(config.PORT_COMPATIBLE_COLOR, 2.5))
        else:
            self.setPen(QPen(Qt.GlobalColor.darkGray, 1.0))


class GraphicsEdge(QGraphicsItem):
    def __init__(self, output_port: GraphicsPort, input_port: GraphicsPort):
        super().__init__()
        self.output_port = output_port
        self.input_port = input_port
        self._path = QPainterPath()
        self.setZValue(0)
        self.setFlag(QGraphicsItem.GraphicsItemFlag.ItemIsSelectable, True)

        pen_width = config.EDGE_PEN_WIDTH
        self.pen = QPen(
            config.EDGE_DEFAULT_COLOR,
            pen_width,
            Qt.PenStyle.SolidLine,
            Qt.PenCapStyle.RoundCap,
            Qt.PenJoinStyle.RoundJoin,
        )
        self.selected_pen = QPen(
            config.EDGE_SELECTED_COLOR,
            pen_width + 0.5,
            Qt.PenStyle.SolidLine,
            Qt.PenCapStyle.RoundCap,
            Qt.PenJoinStyle.RoundJoin,
        )
        self.arrow_size = config.ARROW_SIZE
        self.adjust()

    @property
    def source_node(self) -> "GraphicsNode":
        return self.output_port.node

    @property
    def target_node(self) -> "GraphicsNode":
        return self.input_port.node

    def attach(self):
        self.output_port.add_edge(self)
        self.input_port.add_edge(self)

    def detach(self):
        self.output_port.remove_edge(self)
        self.input_port.remove_edge(self)

    def shape(self) -> QPainterPath:
        if self._path.isEmpty():
            return QPainterPath()
        stroker = QPainterPathStroker()
        stroker.setWidth(max(10.0, self.pen.widthF() + 6.0))
        return stroker.createStroke(self._path)

    def boundingRect(self) -> QRectF:
        if self._path.isEmpty():
            return QRectF()
        extra = (self.pen.widthF() / 2.0) + self.arrow_size + 5.0
        return self._path.boundingRect().adjusted(-extra, -extra, extra, extra)

    def calculate_path(self) -> QPainterPath:
        p1 = self.output_port.scenePos()
        p2 = self.input_port.scenePos()
        if self.source_node is self.target_node:
            logging.warning(
                f"Drawing self-loop edge on node '{self.source_node.node_data.id}'."
            )

        path = QPainterPath()
        path.moveTo(p1)
        control_offset_x = max(40.0, abs(p2.x() - p1.x()) * 0.5)
        c1 = p1 + QPointF(control_offset_x, 0.0)
        c2 = p2 - QPointF(control_offset_x, 0.0)
        path.cubicTo(c1, c2, p2)
        return path

    def adjust(self):
        self.prepareGeometryChange()
        self._path = self.calculate_path()
        self.update()

    def paint(
        self,
        painter: QPainter,
        option: QStyleOptionGraphicsItem,
        widget: Optional[QWidget] = None,
    ):
        if self._path.isEmpty():
            return

        current_pen = self.selected_pen if self.isSelected() else self.pen
        painter.setPen(current_pen)
        painter.setBrush(Qt.BrushStyle.NoBrush)
        painter.drawPath(self._path)

        path_len = self._path.length()
        if path_len < self.arrow_size:
            return
        arrow_tip = self._path.pointAtPercent(1.0)
        angle_check_percent = self._path.percentAtLength(max(0.0, path_len - 1.0))
        angle_rad = math.radians(-self._path.angleAtPercent(angle_check_percent))
        angle_offset = math.pi / 6
        arrow_p1 = arrow_tip - QPointF(
            math.cos(angle_rad + angle_offset) * self.arrow_size,
            math.sin(angle_rad + angle_offset) * self.arrow_size,
        )
        arrow_p2 = arrow_tip - QPointF(
            math.cos(angle_rad - angle_offset) * self.arrow_size,
            math.sin(angle_rad - angle_offset) * self.arrow_size,
        )
        arrowhead = QPolygonF([arrow_tip, arrow_p1, arrow_p2])
        if not arrowhead.boundingRect().isEmpty():
            painter.setBrush(QBrush(current_pen.color()))
            painter.setPen(QPen(current_pen.color(), 1))
            painter.drawPolygon(arrowhead)

    def contextMenuEvent(self, event: QGraphicsSceneContextMenuEvent):
        menu = QMenu()
        delete_action = menu.addAction("Delete Connection")
        action = menu.exec(event.screenPos())
        if action == delete_action and isinstance(self.scene(), DialogueGraphScene):
            self.scene().disconnect_edge(self)


class GraphicsNode(QGraphicsItem):
    """Visual counterpart of one DialogueNodeData.

    Owns one input port and one output port per choice. Output port ``i``
    always belongs to ``node_data.choices[i]``; every structural change to the
    choice list ends in ``refresh_choices()`` which restores that pairing.
    """

    def __init__(self, node_data: DialogueNodeData, graph: "DialogueGraphScene"):
        super().__init__()
        self.node_data = node_data
        self.graph = graph
        self.width = config.NODE_WIDTH
        self.height = config.NODE_HEIGHT
        self.setFlag(QGraphicsItem.GraphicsItemFlag.ItemIsMovable, True)
        self.setFlag(QGraphicsItem.GraphicsItemFlag.ItemIsSelectable, True)
        self.setFlag(QGraphicsItem.GraphicsItemFlag.ItemSendsGeometryChanges, True)
        self.setZValue(1)
        self._move_start_pos: Optional[QPointF] = None

        self.input_port = GraphicsPort(self, PORT_INPUT, CAPACITY_MULTI)
        self.input_port.setPos(0.0, config.NODE_HEADER_HEIGHT + 16.0)
        self.choice_ports: List[GraphicsPort] = []

        self.setPos(QPointF(node_data.position[0], node_data.position[1]))
        self.refresh_choices()

    def toolTip(self) -> str:
        return f"ID: {self.node_data.id}\nSpeaker: {self.node_data.speaker}\n---\n{self.node_data.text}"

    def boundingRect(self) -> QRectF:
        return QRectF(0, 0, self.width, self.height).adjusted(-2, -2, 2, 2)

    # --- Ports ---

    def all_ports(self) -> List[GraphicsPort]:
        return [self.input_port] + list(self.choice_ports)

    def get_choice_port(self, choice_index: int) -> Optional[GraphicsPort]:
        if 0 <= choice_index < len(self.choice_ports):
            return self.choice_ports[choice_index]
        return None

    def choice_index_of_port(self, port: GraphicsPort) -> int:
        for index, choice_port in enumerate(self.choice_ports):
            if choice_port is port:
                return index
        return -1

    def _create_choice_port(self):
        port = GraphicsPort(self, PORT_OUTPUT, CAPACITY_SINGLE)
        self.choice_ports.append(port)

    def _remove_choice_port(self, choice_index: int):
        if not 0 <= choice_index < len(self.choice_ports):
            return
        port = self.choice_ports.pop(choice_index)
        for edge in list(port.edges):
            self.graph.remove_edge_object(edge)
        if port.scene() is not None:
            port.scene().removeItem(port)
        else:
            port.setParentItem(None)
        for remaining in self.choice_ports[choice_index:]:
            remaining.refresh_label()

    def refresh_choices(self):
        while len(self.choice_ports) > len(self.node_data.choices):
            self._remove_choice_port(len(self.choice_ports) - 1)
        while len(self.choice_ports) < len(self.node_data.choices):
            self._create_choice_port()

        for port in self.choice_ports:
            port.refresh_label()
        self._layout_ports()
        self.update()

    def _layout_ports(self):
        needed = (
            config.CHOICES_TOP
            + len(self.choice_ports) * config.CHOICE_ROW_HEIGHT
            + config.NODE_TEXT_MARGIN
        )
        new_height = max(config.NODE_HEIGHT, needed)
        if new_height != self.height:
            self.prepareGeometryChange()
            self.height = new_height
        for i, port in enumerate(self.choice_ports):
            port.setPos(
                self.width,
                config.CHOICES_TOP + i * config.CHOICE_ROW_HEIGHT + config.CHOICE_ROW_HEIGHT / 2.0,
            )
        self._adjust_edges()

    def _adjust_edges(self):
        for port in self.all_ports():
            for edge in port.edges:
                edge.adjust()

    # --- Field edits ---

    def set_speaker(self, speaker: str):
        self._set_field("speaker", speaker)

    def set_text(self, text: str):
        self._set_field("text", text)

    def _set_field(self, field_name: str, value: str):
        old_value = getattr(self.node_data, field_name)
        setattr(self.node_data, field_name, value)
        self.update()
        self.graph.notify_field_changed(self.node_data.id, field_name, old_value, value)

    def set_choice_text(self, choice: ChoiceData, text: str) -> bool:
        if self.node_data.index_of_choice(choice) < 0:
            return False
        old_text = choice.text
        choice.text = text
        self.update()
        self.graph.notify_field_changed(self.node_data.id, "choice_text", old_text, text)
        return True

    def write_position_back(self) -> bool:
        new_pos = self.pos()
        position = (new_pos.x(), new_pos.y())
        if position == self.node_data.position:
            return False
        self.node_data.position = position
        logging.debug(f"Node '{self.node_data.id}' moved to ({new_pos.x()}, {new_pos.y()}).")
        return True

    def handle_moved(self):
        # Qt moves every selected node, but only the grabbed one gets the release.
        moved_nodes = [self] + [
            item
            for item in self.graph.selectedItems()
            if isinstance(item, GraphicsNode) and item is not self
        ]
        changed = False
        for graphics_node in moved_nodes:
            if graphics_node.write_position_back():
                changed = True
        if changed:
            self.graph.notify_changed()

    # --- Choice list ---

    def add_choice(self) -> ChoiceData:
        choice = ChoiceData(text=config.DEFAULT_CHOICE_TEXT, target_node_id="")
        self.node_data.choices.append(choice)
        self._create_choice_port()
        self.refresh_choices()
        logging.debug(
            f"Added choice {len(self.node_data.choices)} to node '{self.node_data.id}'."
        )
        self.graph.notify_changed(structural=True)
        return choice

    def remove_choice(self, choice: ChoiceData) -> bool:
        # Indices shift after every removal, so resolve the index now.
        index = self.node_data.index_of_choice(choice)
        if index < 0:
            return False
        del self.node_data.choices[index]
        self._remove_choice_port(index)
        self.refresh_choices()
        logging.debug(f"Removed choice {index + 1} from node '{self.node_data.id}'.")
        self.graph.notify_changed(structural=True)
        return True

    # --- Qt overrides ---

    def paint(
        self,
        painter: QPainter,
        option: QStyleOptionGraphicsItem,
        widget: Optional[QWidget] = None,
    ):
        rect = QRectF(0, 0, self.width, self.height)
        brush_color = config.NODE_COLOR
        if self.isSelected():
            brush_color = brush_color.lighter(config.NODE_SELECTED_BRIGHTNESS)
        painter.setBrush(QBrush(brush_color))
        painter.setPen(
            QPen(Qt.GlobalColor.white if self.isSelected() else Qt.GlobalColor.darkGray, 1.5)
        )
        painter.drawRoundedRect(rect, 5.0, 5.0)

        header_rect = QRectF(0, 0, self.width, config.NODE_HEADER_HEIGHT)
        painter.setBrush(QBrush(config.NODE_HEADER_COLOR))
        painter.setPen(Qt.PenStyle.NoPen)
        painter.drawRoundedRect(header_rect, 5.0, 5.0)

        margin = config.NODE_TEXT_MARGIN
        painter.setPen(QPen(config.NODE_TEXT_COLOR))
        painter.drawText(header_rect, Qt.AlignmentFlag.AlignCenter, "Dialogue Node")

        speaker_rect = QRectF(
            margin + 2 * config.PORT_RADIUS + 40,
            config.NODE_HEADER_HEIGHT + 6,
            self.width - 2 * margin - 2 * config.PORT_RADIUS - 40,
            20,
        )
        painter.drawText(
            speaker_rect,
            Qt.AlignmentFlag.AlignLeft | Qt.AlignmentFlag.AlignVCenter,
            f"Speaker: {self.node_data.speaker}",
        )

        text_rect = QRectF(
            margin,
            speaker_rect.bottom() + 6,
            self.width - 2 * margin,
            config.CHOICES_TOP - speaker_rect.bottom() - 12,
        )
        cleaned_text = self.node_data.text.replace("\n", " ")
        preview_len = 90
        preview = (
            cleaned_text[:preview_len] + "..."
            if len(cleaned_text) > preview_len
            else cleaned_text
        )
        painter.drawText(
            text_rect,
            Qt.AlignmentFlag.AlignLeft
            | Qt.AlignmentFlag.AlignTop
            | Qt.TextFlag.TextWordWrap,
            preview,
        )

        painter.setPen(QPen(config.NODE_DIM_TEXT_COLOR))
        for i, choice in enumerate(self.node_data.choices):
            row_rect = QRectF(
                margin,
                config.CHOICES_TOP + i * config.CHOICE_ROW_HEIGHT,
                self.width * 0.6,
                config.CHOICE_ROW_HEIGHT,
            )
            painter.drawText(
                row_rect,
                Qt.AlignmentFlag.AlignLeft | Qt.AlignmentFlag.AlignVCenter,
                choice.text,
            )

    def itemChange(self, change: QGraphicsItem.GraphicsItemChange, value: Any) -> Any:
        if change == QGraphicsItem.GraphicsItemChange.ItemPositionHasChanged:
            self._adjust_edges()
        return super().itemChange(change, value)

    def mousePressEvent(self, event: QMouseEvent) -> None:
        if event.button() == Qt.MouseButton.LeftButton:
            self._move_start_pos = self.pos()
        super().mousePressEvent(event)

    def mouseReleaseEvent(self, event: QMouseEvent) -> None:
        super().mouseReleaseEvent(event)
        if (
            event.button() == Qt.MouseButton.LeftButton
            and self._move_start_pos is not None
        ):
            start_pos = self._move_start_pos
            self._move_start_pos = None
            if start_pos != self.pos():
                self.handle_moved()

    def contextMenuEvent(self, event: QGraphicsSceneContextMenuEvent):
        menu = QMenu()
        add_choice_action = menu.addAction("Add Choice")
        remove_menu = menu.addMenu("Remove Choice")
        remove_actions = {}
        for i, choice in enumerate(self.node_data.choices):
            label = choice.text if len(choice.text) <= 30 else choice.text[:30] + "..."
            remove_actions[remove_menu.addAction(f"{i + 1}: {label}")] = choice
        remove_menu.setEnabled(bool(remove_actions))
        menu.addSeparator()
        delete_action = menu.addAction("Delete Node")

        action = menu.exec(event.screenPos())

        if action == add_choice_action:
            self.add_choice()
        elif action in remove_actions:
            self.remove_choice(remove_actions[action])
        elif action == delete_action:
            self.graph.delete_items([self])


@dataclass
class GraphChange:
    """One user-driven structural batch for DialogueGraphScene.apply_graph_change."""

    edges_to_remove: List[GraphicsEdge] = field(default_factory=list)
    nodes_to_remove: List[GraphicsNode] = field(default_factory=list)
    edges_to_create: List[GraphicsEdge] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.edges_to_remove or self.nodes_to_remove or self.edges_to_create)


def _contains(items: Iterable[Any], item: Any) -> bool:
    return any(existing is item for existing in items)


class DialogueGraphScene(QGraphicsScene):
    """Projection of a DialogueDocument into graphics items.

    All structural edits coming from the user go through ``apply_graph_change``,
    which updates the document first and the scene second.
    """

    documentChanged = pyqtSignal()
    structureChanged = pyqtSignal()
    nodeFieldChanged = pyqtSignal(str, str, object, object)

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setBackgroundBrush(config.SCENE_BACKGROUND_COLOR)
        self.document = DialogueDocument()
        self.graphics_nodes: Dict[str, GraphicsNode] = {}
        self.graphics_edges: List[GraphicsEdge] = []
        self._populating = False

    @property
    def is_populating(self) -> bool:
        return self._populating

    # --- Change notification ---

    def notify_changed(self, structural: bool = False):
        if self._populating:
            return
        self.documentChanged.emit()
        if structural:
            self.structureChanged.emit()

    def notify_field_changed(self, node_id: str, field_name: str, old_value, new_value):
        if self._populating:
            return
        self.nodeFieldChanged.emit(node_id, field_name, old_value, new_value)
        self.documentChanged.emit()

    # --- Projection ---

    def populate(self, document: DialogueDocument):
        self._populating = True
        try:
            self.clear_graph()
            self.document = document

            for node_data in document.nodes:
                self._create_graphics_node(node_data)

            for node_data in document.nodes:
                parent_node = self.graphics_nodes.get(node_data.id)
                if parent_node is None:
                    continue
                for i, choice in enumerate(node_data.choices):
                    if not choice.target_node_id:
                        continue
                    child_node = self.graphics_nodes.get(choice.target_node_id)
                    if child_node is None:
                        logging.debug(
                            f"Choice {i + 1} of '{node_data.id}' points at missing node '{choice.target_node_id}'. Edge not drawn."
                        )
                        continue
                    choice_port = parent_node.get_choice_port(i)
                    if choice_port is not None:
                        self._add_edge_item(GraphicsEdge(choice_port, child_node.input_port))
        finally:
            self._populating = False
        logging.info(
            f"Populated graph '{document.name}': {len(self.graphics_nodes)} nodes, {len(self.graphics_edges)} edges."
        )
        self.structureChanged.emit()

    def clear_graph(self):
        for edge in list(self.graphics_edges):
            self.remove_edge_object(edge)
        for graphics_node in list(self.graphics_nodes.values()):
            if graphics_node.scene() is self:
                self.removeItem(graphics_node)
        self.graphics_nodes.clear()
        self.graphics_edges.clear()
        for item in self.items():
            if item.parentItem() is None:
                self.removeItem(item)

    def _create_graphics_node(self, node_data: DialogueNodeData) -> Optional[GraphicsNode]:
        if node_data.id in self.graphics_nodes:
            logging.error(
                f"Internal Error: Node ID '{node_data.id}' already exists in the graph."
            )
            return None
        graphics_node = GraphicsNode(node_data, self)
        self.addItem(graphics_node)
        self.graphics_nodes[node_data.id] = graphics_node
        return graphics_node

    def create_dialogue_node(self, position: QPointF) -> GraphicsNode:
        node_data = DialogueNodeData.create((position.x(), position.y()))
        self.document.add_node(node_data)
        graphics_node = self._create_graphics_node(node_data)
        logging.info(f"Added node '{node_data.id}'.")
        self.notify_changed(structural=True)
        return graphics_node

    def get_node(self, node_id: str) -> Optional[GraphicsNode]:
        return self.graphics_nodes.get(node_id)

    def get_edges_for_node(self, graphics_node: GraphicsNode) -> List[GraphicsEdge]:
        connected: List[GraphicsEdge] = []
        for port in graphics_node.all_ports():
            for edge in port.edges:
                if not _contains(connected, edge):
                    connected.append(edge)
        return connected

    def edge_pairs(self) -> Set[Tuple[str, int, str]]:
        return {
            (
                edge.source_node.node_data.id,
                edge.source_node.choice_index_of_port(edge.output_port),
                edge.target_node.node_data.id,
            )
            for edge in self.graphics_edges
        }

    def _add_edge_item(self, edge: GraphicsEdge):
        edge.attach()
        self.addItem(edge)
        self.graphics_edges.append(edge)
        edge.adjust()

    def remove_edge_object(self, edge: GraphicsEdge):
        edge.detach()
        self.graphics_edges = [e for e in self.graphics_edges if e is not edge]
        if edge.scene() is self:
            self.removeItem(edge)

    # --- Connection rules ---

    def is_compatible(self, start_port: GraphicsPort, end_port: GraphicsPort) -> bool:
        return (
            start_port.direction != end_port.direction
            and start_port.node is not end_port.node
        )

    def get_compatible_ports(self, start_port: GraphicsPort) -> List[GraphicsPort]:
        return [
            port
            for graphics_node in self.graphics_nodes.values()
            for port in graphics_node.all_ports()
            if self.is_compatible(start_port, port)
        ]

    # --- User-driven edits ---

    def connect_ports(self, port_a: GraphicsPort, port_b: GraphicsPort) -> Optional[GraphicsEdge]:
        if not self.is_compatible(port_a, port_b):
            logging.warning(
                f"Rejected connection between '{port_a.node.node_data.id}' and '{port_b.node.node_data.id}'."
            )
            return None
        if port_a.direction == PORT_OUTPUT:
            output_port, input_port = port_a, port_b
        else:
            output_port, input_port = port_b, port_a

        change = GraphChange()
        # Output ports hold a single connection; the old one goes in the same batch.
        change.edges_to_remove.extend(output_port.edges)
        edge = GraphicsEdge(output_port, input_port)
        change.edges_to_create.append(edge)
        self.apply_graph_change(change)
        return edge if edge.scene() is self else None

    def disconnect_edge(self, edge: GraphicsEdge):
        self.apply_graph_change(GraphChange(edges_to_remove=[edge]))

    def delete_items(self, items: Iterable[QGraphicsItem]):
        change = GraphChange()
        for item in items:
            if isinstance(item, GraphicsNode) and not _contains(change.nodes_to_remove, item):
                change.nodes_to_remove.append(item)
            elif isinstance(item, GraphicsEdge) and not _contains(change.edges_to_remove, item):
                change.edges_to_remove.append(item)
        for graphics_node in change.nodes_to_remove:
            for edge in self.get_edges_for_node(graphics_node):
                if not _contains(change.edges_to_remove, edge):
                    change.edges_to_remove.append(edge)
        if change.is_empty():
            return
        self.apply_graph_change(change)

    def delete_selected_items(self):
        self.delete_items(self.selectedItems())

    def apply_graph_change(self, change: GraphChange):
        removed_node_ids: Set[str] = set()
        for edge in change.edges_to_remove:
            self._unlink_choice(edge)
        for graphics_node in change.nodes_to_remove:
            node_id = graphics_node.node_data.id
            self.document.remove_node(node_id)
            if self.graphics_nodes.get(node_id) is graphics_node:
                del self.graphics_nodes[node_id]
            removed_node_ids.add(node_id)
            logging.info(f"Deleted node '{node_id}'.")

        committed: List[GraphicsEdge] = []
        displaced: List[GraphicsEdge] = []
        for edge in change.edges_to_create:
            source_id = edge.source_node.node_data.id
            target_id = edge.target_node.node_data.id
            if source_id in removed_node_ids or target_id in removed_node_ids:
                continue
            if not self.is_compatible(edge.output_port, edge.input_port):
                logging.warning(f"Rejected connection '{source_id}' -> '{target_id}'.")
                continue
            if self._link_choice(edge):
                # Output ports hold one connection; the newest one wins.
                for existing in edge.output_port.edges:
                    if not _contains(change.edges_to_remove, existing) and not _contains(displaced, existing):
                        displaced.append(existing)
                committed = [e for e in committed if e.output_port is not edge.output_port]
                committed.append(edge)

        # Scene updates only after the document is consistent.
        for edge in change.edges_to_remove + displaced:
            self.remove_edge_object(edge)
        for graphics_node in change.nodes_to_remove:
            for edge in self.get_edges_for_node(graphics_node):
                self.remove_edge_object(edge)
            if graphics_node.scene() is self:
                self.removeItem(graphics_node)
        for edge in committed:
            self._add_edge_item(edge)

        self.notify_changed(structural=True)

    def _unlink_choice(self, edge: GraphicsEdge):
        source = edge.source_node
        choice_index = source.choice_index_of_port(edge.output_port)
        if 0 <= choice_index < len(source.node_data.choices):
            source.node_data.choices[choice_index].target_node_id = ""
            logging.debug(f"Unlinked choice {choice_index + 1} of '{source.node_data.id}'.")

    def _link_choice(self, edge: GraphicsEdge) -> bool:
        source = edge.source_node
        choice_index = source.choice_index_of_port(edge.output_port)
        if not 0 <= choice_index < len(source.node_data.choices):
            return False
        target_id = edge.target_node.node_data.id
        source.node_data.choices[choice_index].target_node_id = target_id
        logging.debug(f"Linked choice {choice_index + 1} of '{source.node_data.id}' -> '{target_id}'.")
        return True


class DialogueGraphView(QGraphicsView):
    def __init__(self, scene: DialogueGraphScene, parent: Optional[QWidget] = None):
        super().__init__(scene, parent)
        self.graph = scene
        self.setRenderHint(QPainter.RenderHint.Antialiasing)
        self.setDragMode(QGraphicsView.DragMode.ScrollHandDrag)
        self.setTransformationAnchor(QGraphicsView.ViewportAnchor.AnchorUnderMouse)
        self.setResizeAnchor(QGraphicsView.ViewportAnchor.AnchorUnderMouse)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self._zoom_factor_base = config.VIEW_ZOOM_FACTOR
        self.drag_source_port: Optional[GraphicsPort] = None
        self.drag_line: Optional[QGraphicsLineItem] = None
        self._compatible_ports: List[GraphicsPort] = []

    @property
    def is_drawing_edge(self) -> bool:
        return self.drag_source_port is not None

    def create_node_at_view_center(self) -> GraphicsNode:
        center = self.mapToScene(self.viewport().rect().center())
        return self.graph.create_dialogue_node(node_position_for_center(center))

    def _port_at(self, view_pos: QPoint) -> Optional[GraphicsPort]:
        item = self.itemAt(view_pos)
        while item is not None and not isinstance(item, GraphicsPort):
            item = item.parentItem()
        return item

    # --- Edge drag ---

    def begin_edge_drag(self, port: GraphicsPort):
        self.drag_source_port = port
        self._compatible_ports = self.graph.get_compatible_ports(port)
        for candidate in self._compatible_ports:
            candidate.set_compatible_highlight(True)
        start = port.scenePos()
        self.drag_line = QGraphicsLineItem(QLineF(start, start))
        self.drag_line.setPen(
            QPen(config.EDGE_DRAG_COLOR, config.EDGE_PEN_WIDTH + 0.5, Qt.PenStyle.DashLine)
        )
        self.drag_line.setZValue(3)
        self.graph.addItem(self.drag_line)
        self.setDragMode(QGraphicsView.DragMode.NoDrag)
        self.setCursor(Qt.CursorShape.CrossCursor)
        logging.debug(f"Started edge drag from '{port.node.node_data.id}' ({port.label_text()}).")

    def end_edge_drag(self, target_port: Optional[GraphicsPort]) -> Optional[GraphicsEdge]:
        source_port = self.drag_source_port
        is_candidate = target_port is not None and _contains(self._compatible_ports, target_port)
        self._cleanup_edge_drag()
        if source_port is None or not is_candidate:
            logging.debug("Edge drag ended without a compatible port.")
            return None
        return self.graph.connect_ports(source_port, target_port)

    def _cleanup_edge_drag(self):
        for candidate in self._compatible_ports:
            candidate.set_compatible_highlight(False)
        self._compatible_ports = []
        if self.drag_line is not None and self.drag_line.scene() is not None:
            self.drag_line.scene().removeItem(self.drag_line)
        self.drag_line = None
        self.drag_source_port = None
        self.setDragMode(QGraphicsView.DragMode.ScrollHandDrag)
        self.unsetCursor()

    # --- Qt overrides ---

    def mousePressEvent(self, event: QMouseEvent):
        if event.button() == Qt.MouseButton.LeftButton and not self.is_drawing_edge:
            port = self._port_at(event.pos())
            if port is not None:
                self.begin_edge_drag(port)
                event.accept()
                return
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event: QMouseEvent):
        if self.is_drawing_edge and self.drag_line is not None:
            line = self.drag_line.line()
            line.setP2(self.mapToScene(event.pos()))
            self.drag_line.setLine(line)
            event.accept()
        else:
            super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event: QMouseEvent):
        if self.is_drawing_edge:
            if event.button() == Qt.MouseButton.LeftButton:
                self.end_edge_drag(self._port_at(event.pos()))
            event.accept()
        else:
            super().mouseReleaseEvent(event)

    def wheelEvent(self, event: QWheelEvent):
        angle = event.angleDelta().y()
        if angle == 0:
            event.ignore()
            return
        factor = self._zoom_factor_base if angle > 0 else 1.0 / self._zoom_factor_base
        current_scale = self.transform().m11()
        if (factor > 1.0 and current_scale * factor > config.VIEW_MAX_ZOOM) or (
            factor < 1.0 and current_scale * factor < config.VIEW_MIN_ZOOM
        ):
            event.ignore()
            return
        self.scale(factor, factor)
        event.accept()

    def keyPressEvent(self, event: QKeyEvent):
        if event.key() in (Qt.Key.Key_Delete, Qt.Key.Key_Backspace):
            self.graph.delete_selected_items()
            event.accept()
        elif event.key() == Qt.Key.Key_Escape and self.is_drawing_edge:
            self._cleanup_edge_drag()
            event.accept()
        elif event.matches(QKeySequence.StandardKey.New):
            self.create_node_at_view_center()
            event.accept()
        else:
            super().keyPressEvent(event)

    def contextMenuEvent(self, event) -> None:
        if self.is_drawing_edge:
            event.accept()
            return
        if self.itemAt(event.pos()) is not None:
            super().contextMenuEvent(event)
            return
        menu = QMenu(self)
        create_action = menu.addAction("Create Node")
        action = menu.exec(event.globalPos())
        if action == create_action:
            self.create_node_at_view_center()
