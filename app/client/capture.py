import io
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import cm
from reportlab.pdfgen import canvas

logger = logging.getLogger(__name__)

Point = Tuple[float, float]

@dataclass
class Stroke:
    points: List[Point]
    color: str = "#000000"
    width: float = 2.0

@dataclass
class Shape:
    kind: str  # rect | ellipse | line
    x: float
    y: float
    w: float
    h: float
    color: str = "#000000"
    width: float = 2.0

@dataclass
class TextBox:
    x: float
    y: float
    text: str
    size: float = 14.0
    color: str = "#000000"

@dataclass
class WhiteboardPage:
    """One whiteboard page in screen coordinates (origin top-left)"""
    width: float = 1200.0
    height: float = 1600.0
    strokes: List[Stroke] = field(default_factory=list)
    shapes: List[Shape] = field(default_factory=list)
    texts: List[TextBox] = field(default_factory=list)

def _color(value: str):
    try:
        return colors.HexColor(value)
    except (ValueError, TypeError):
        return colors.black

def render_whiteboard_pdf(
    pages: Sequence[WhiteboardPage],
    title: Optional[str] = None,
    student_name: Optional[str] = None
) -> bytes:
    """Render every whiteboard page onto its own A4 page and return the PDF bytes"""
    buffer = io.BytesIO()
    page_width, page_height = A4
    margin = 1 * cm
    header = 0.8 * cm

    c = canvas.Canvas(buffer, pagesize=A4)
    if title:
        c.setTitle(title)
    if student_name:
        c.setAuthor(student_name)

    for number, page in enumerate(pages or [WhiteboardPage()], start=1):
        scale = min(
            (page_width - 2 * margin) / page.width,
            (page_height - 2 * margin - header) / page.height
        )
        top = page_height - margin - header

        def to_pdf(x: float, y: float) -> Point:
            return margin + x * scale, top - y * scale

        c.setFont("Helvetica", 9)
        c.setFillColor(colors.grey)
        label = " - ".join(part for part in (title, student_name) if part)
        c.drawString(margin, page_height - margin - 10, f"{label}  (page {number}/{len(pages) or 1})".strip())

        for shape in page.shapes:
            c.setStrokeColor(_color(shape.color))
            c.setLineWidth(shape.width * scale)
            x, y = to_pdf(shape.x, shape.y + shape.h)
            if shape.kind == "rect":
                c.rect(x, y, shape.w * scale, shape.h * scale, stroke=1, fill=0)
            elif shape.kind == "ellipse":
                c.ellipse(x, y, x + shape.w * scale, y + shape.h * scale, stroke=1, fill=0)
            elif shape.kind == "line":
                x1, y1 = to_pdf(shape.x, shape.y)
                x2, y2 = to_pdf(shape.x + shape.w, shape.y + shape.h)
                c.line(x1, y1, x2, y2)
            else:
                logger.warning(f"Skipping unknown shape kind: {shape.kind}")

        c.setLineCap(1)
        c.setLineJoin(1)
        for stroke in page.strokes:
            if len(stroke.points) < 2:
                continue
            c.setStrokeColor(_color(stroke.color))
            c.setLineWidth(stroke.width * scale)
            path = c.beginPath()
            path.moveTo(*to_pdf(*stroke.points[0]))
            for point in stroke.points[1:]:
                path.lineTo(*to_pdf(*point))
            c.drawPath(path, stroke=1, fill=0)

        for box in page.texts:
            c.setFillColor(_color(box.color))
            c.setFont("Helvetica", box.size * scale)
            x, y = to_pdf(box.x, box.y + box.size)
            c.drawString(x, y, box.text)

        c.showPage()

    c.save()
    data = buffer.getvalue()
    logger.info(f"Rendered {len(pages) or 1} whiteboard pages to PDF ({round(len(data) / 1024)}KB)")
    return data
