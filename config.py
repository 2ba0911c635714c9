from PyQt6.QtGui import QColor
from typing import Optional

# --- Application Identification ---
APP_NAME = "Dialogue Graph Editor"
APP_VERSION = "0.3"

# --- Logging ---
LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# --- Key Mapping Configuration ---
# Defines how internal attributes map to keys in the saved dialogue files (.json).
# Changing a value here changes the file format, so existing files will no longer load.
PROJECT_KEY_MAP = {
    # Document
    "name": "name",
    "nodes": "nodes",
    # Node
    "id": "id",
    "speaker": "speaker",
    "text": "text",
    "position": "position",
    "x": "x",
    "y": "y",
    "choices": "choices",
    # Choice
    "choice_text": "text",
    "target_node_id": "targetNodeId",
}

def get_project_key(internal_key: str) -> str:
    """Safely gets the file key for an internal attribute name."""
    return PROJECT_KEY_MAP.get(internal_key, internal_key) # Fallback to internal name if not mapped

# --- Defaults ---
DEFAULT_SPEAKER = "New Speaker"
DEFAULT_TEXT = "Enter dialogue text here."
DEFAULT_CHOICE_TEXT = "New Choice"
NEW_DIALOGUE_PREFIX = "NewDialogue"
NEW_DIALOGUE_SUFFIX_RANGE = (100, 999)     # Inclusive range of the random number appended to new names
INPUT_PORT_LABEL = "Input"
CHOICE_PORT_LABEL = "Choice {number}"      # number is the port index + 1

# --- Visuals & Colors ---
NODE_COLOR = QColor("#444455")
NODE_HEADER_COLOR = QColor("#2F2F3D")
NODE_SELECTED_BRIGHTNESS = 130               # How much lighter selected nodes are (100 = no change)
NODE_TEXT_COLOR = QColor(230, 230, 230)      # Light gray text on nodes
NODE_DIM_TEXT_COLOR = QColor(170, 170, 180)  # Secondary text (choice rows, speaker label)
PORT_COLOR = QColor("#8FBC8F")
PORT_CONNECTED_COLOR = QColor("#F0E68C")
PORT_COMPATIBLE_COLOR = QColor(0, 255, 0, 220) # Outline for valid targets while dragging a connection
PORT_LABEL_COLOR = QColor(210, 210, 210)
EDGE_DEFAULT_COLOR = QColor("#BBB")
EDGE_SELECTED_COLOR = QColor("#F0E68C")
EDGE_DRAG_COLOR = QColor("orange")             # Color of the temporary line when dragging an edge
MISSING_LINK_TEXT_COLOR = QColor("orange")     # For "(missing)" text in the properties panel
SCENE_BACKGROUND_COLOR = QColor("#333")
DIRTY_MARKER_COLOR = QColor("red")

# --- Dimensions & Layout ---
NODE_WIDTH = 300
NODE_HEIGHT = 250                          # Minimum height; grows with the number of choices
NODE_HEADER_HEIGHT = 24
NODE_TEXT_MARGIN = 8.0
CHOICES_TOP = 130                          # Y offset of the first choice row inside a node
CHOICE_ROW_HEIGHT = 24
PORT_RADIUS = 6.0
EDGE_PEN_WIDTH = 1.7
ARROW_SIZE = 8.0
VIEW_ZOOM_FACTOR = 1.15                    # Zoom factor per mouse wheel step
VIEW_MIN_ZOOM = 0.1
VIEW_MAX_ZOOM = 4.0
WINDOW_MIN_WIDTH = 800
WINDOW_MIN_HEIGHT = 600
LIST_PANEL_WIDTH = 300
PROPERTIES_PANEL_WIDTH = 320

# --- File Settings ---
DIALOGUES_DIR = "Dialogues"                # Default storage folder, relative to the working directory
DIALOGUE_FILE_EXTENSION = ".json"
JSON_INDENT = 2                            # Indentation spaces for saved JSON files

def dialogue_file_name(name: str) -> Optional[str]:
    """Returns the file name used to store a dialogue, or None for an empty name."""
    if not name:
        return None
    return f"{name}{DIALOGUE_FILE_EXTENSION}"
