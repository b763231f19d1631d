"""
Freehand slice annotations.

The drawing surface is reached only through `DrawingCapability`. Saved
annotations carry the serialized stroke list (`note`) and a flattened PNG
snapshot (`image_data`) for side-by-side display.
"""
import abc
import base64
import copy
import io
import json
import logging
from typing import List, Optional

from PIL import Image, ImageColor, ImageDraw
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from . import schemas
from .predictions import clamp_slice_index
from .store import AnnotationStore

logger = logging.getLogger(__name__)


class Point(BaseModel):
    x: float
    y: float


class CanvasPath(BaseModel):
    """One stroke, in the sketch canvas' own JSON shape."""
    paths: List[Point]
    stroke_width: float = Field(default=4, alias="strokeWidth")
    stroke_color: str = Field(default="#FF0000", alias="strokeColor")
    draw_mode: bool = Field(default=True, alias="drawMode")

    class Config:
        populate_by_name = True


_paths_adapter = TypeAdapter(List[CanvasPath])


def serialize_paths(paths: List[CanvasPath]) -> str:
    return json.dumps([p.model_dump(by_alias=True) for p in paths])


def deserialize_paths(note: str) -> List[CanvasPath]:
    return _paths_adapter.validate_json(note)


class DrawingCapability(abc.ABC):
    """What the annotation lifecycle needs from a freehand drawing surface."""

    @abc.abstractmethod
    def load_paths(self, paths: List[CanvasPath]) -> None:
        """Show exactly `paths` and start a fresh undo history."""

    @abc.abstractmethod
    def export_paths(self) -> List[CanvasPath]:
        ...

    @abc.abstractmethod
    def export_image(self) -> str:
        """Flattened strokes as an image data URL."""

    @abc.abstractmethod
    def clear_canvas(self) -> None:
        ...

    @abc.abstractmethod
    def undo(self) -> None:
        ...

    @abc.abstractmethod
    def redo(self) -> None:
        ...


class SketchCanvas(DrawingCapability):
    """
    Stroke list with undo/redo, rendered with Pillow.

    Every edit (a new stroke or a clear) is one undo step. Redo history is
    dropped as soon as a new edit is made.
    """

    def __init__(self, width: int = 512, height: int = 512):
        self.width = width
        self.height = height
        self._paths: List[CanvasPath] = []
        self._undo_stack: List[List[CanvasPath]] = []
        self._redo_stack: List[List[CanvasPath]] = []

    def _push_history(self):
        self._undo_stack.append(list(self._paths))
        self._redo_stack.clear()

    def draw(self, path: CanvasPath) -> None:
        self._push_history()
        self._paths.append(path)

    def load_paths(self, paths):
        self._paths = copy.deepcopy(list(paths))
        self._undo_stack.clear()
        self._redo_stack.clear()

    def export_paths(self):
        return copy.deepcopy(self._paths)

    def export_image(self):
        image = Image.new("RGBA", (self.width, self.height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(image)
        for path in self._paths:
            if not path.draw_mode:
                # eraser strokes punch through to transparent, at twice the width
                fill = (0, 0, 0, 0)
                width = max(1, round(path.stroke_width * 2))
            elif path.stroke_color == "transparent":
                continue
            else:
                fill = ImageColor.getcolor(path.stroke_color, "RGBA")
                width = max(1, round(path.stroke_width))
            points = [(p.x, p.y) for p in path.paths]
            if len(points) == 1:
                x, y = points[0]
                r = width / 2
                draw.ellipse((x - r, y - r, x + r, y + r), fill=fill)
            elif points:
                draw.line(points, fill=fill, width=width, joint="curve")
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")

    def clear_canvas(self):
        if self._paths:
            self._push_history()
            self._paths = []

    def undo(self):
        if self._undo_stack:
            self._redo_stack.append(self._paths)
            self._paths = self._undo_stack.pop()

    def redo(self):
        if self._redo_stack:
            self._undo_stack.append(self._paths)
            self._paths = self._redo_stack.pop()


class SliceAnnotator:
    """Ties one patient's slices to a drawing surface and the store."""

    def __init__(self, store: AnnotationStore, patient_id: str, num_slices: int, canvas: DrawingCapability):
        self.store = store
        self.patient_id = patient_id
        self.num_slices = num_slices
        self.canvas = canvas
        self.current_slice = 0
        self.open_slice(0)

    def open_slice(self, slice_index: int) -> int:
        """
        Switch to a slice. Unsaved strokes on the previous slice are dropped and
        the canvas shows the last saved drawing for the new one, or nothing.
        """
        self.current_slice = clamp_slice_index(slice_index, self.num_slices)
        annotation = self.store.get_annotation(self.patient_id, self.current_slice)
        paths: List[CanvasPath] = []
        if annotation is not None:
            try:
                paths = deserialize_paths(annotation.note)
            except ValidationError as e:
                logger.error(
                    "Failed to load drawing for %s slice %d: %s", self.patient_id, self.current_slice, e
                )
        self.canvas.load_paths(paths)
        return self.current_slice

    def save(self) -> Optional[schemas.SliceAnnotation]:
        paths = self.canvas.export_paths()
        if not paths:
            logger.debug("Nothing to save on %s slice %d", self.patient_id, self.current_slice)
            return None
        image_data = self.canvas.export_image()
        return self.store.add_annotation(self.patient_id, self.current_slice, serialize_paths(paths), image_data)

    def clear(self) -> None:
        self.canvas.clear_canvas()
        self.store.remove_annotation(self.patient_id, self.current_slice)

    def undo(self) -> None:
        self.canvas.undo()

    def redo(self) -> None:
        self.canvas.redo()

    @property
    def saved_annotation(self) -> Optional[schemas.SliceAnnotation]:
        return self.store.get_annotation(self.patient_id, self.current_slice)
