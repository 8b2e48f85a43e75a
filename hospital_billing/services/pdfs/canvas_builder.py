# FILE: hospital_billing/services/pdfs/canvas_builder.py
"""
Drawing-operation builder.

Sections draw into a DocumentBuilder, which only records operations per page.
finalize() replays them once onto a ReportLab canvas and keeps the bytes;
after that the builder is read-only.
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Tuple

from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas as rl_canvas

logger = logging.getLogger(__name__)

_TEXT_OPS = {"drawString", "drawRightString", "drawCentredString"}


@dataclass(frozen=True)
class DrawOp:
    name: str
    args: Tuple[Any, ...]
    kwargs: Tuple[Tuple[str, Any], ...] = ()


def load_image(path: Optional[str]) -> Optional[ImageReader]:
    if not path:
        return None
    p = Path(path)
    if not p.exists():
        logger.warning("PDF image not found: %s", path)
        return None
    try:
        return ImageReader(str(p))
    except Exception:
        logger.exception("Failed to load image: %s", path)
        return None


class DocumentBuilder:

    def __init__(self,
                 pagesize=A4,
                 *,
                 title: str = "",
                 author: str = "",
                 number_pages: bool = True):
        self.pagesize = pagesize
        self.title = title
        self.author = author
        self.number_pages = number_pages
        self._pages: List[List[DrawOp]] = [[]]
        self._data: Optional[bytes] = None

    @property
    def width(self) -> float:
        return float(self.pagesize[0])

    @property
    def height(self) -> float:
        return float(self.pagesize[1])

    @property
    def page_count(self) -> int:
        return len(self._pages)

    @property
    def finalized(self) -> bool:
        return self._data is not None

    # -----------------------------
    # recording
    # -----------------------------
    def _op(self, name: str, *args, **kwargs) -> "DocumentBuilder":
        if self._data is not None:
            raise RuntimeError("DocumentBuilder already finalized")
        self._pages[-1].append(DrawOp(name, tuple(args), tuple(sorted(kwargs.items()))))
        return self

    def new_page(self) -> "DocumentBuilder":
        if self._data is not None:
            raise RuntimeError("DocumentBuilder already finalized")
        self._pages.append([])
        return self

    def font(self, name: str, size: float):
        return self._op("setFont", name, size)

    def fill_color(self, color):
        return self._op("setFillColor", color)

    def stroke_color(self, color):
        return self._op("setStrokeColor", color)

    def line_width(self, w: float):
        return self._op("setLineWidth", w)

    def text(self, x: float, y: float, s: str, align: str = "left"):
        s = "" if s is None else str(s)
        if align == "right":
            return self._op("drawRightString", x, y, s)
        if align == "center":
            return self._op("drawCentredString", x, y, s)
        return self._op("drawString", x, y, s)

    def line(self, x1: float, y1: float, x2: float, y2: float):
        return self._op("line", x1, y1, x2, y2)

    def rect(self, x: float, y: float, w: float, h: float, *, fill: bool = False,
             stroke: bool = True):
        return self._op("rect", x, y, w, h, fill=1 if fill else 0, stroke=1 if stroke else 0)

    def image(self, reader: ImageReader, x: float, y: float, w: float, h: float):
        return self._op("drawImage", reader, x, y, width=w, height=h,
                        preserveAspectRatio=True, mask="auto")

    # -----------------------------
    # inspection
    # -----------------------------
    def ops(self, page: int) -> List[DrawOp]:
        return list(self._pages[page])

    def texts(self, page: Optional[int] = None) -> List[str]:
        pages = self._pages if page is None else [self._pages[page]]
        return [op.args[2] for ops in pages for op in ops if op.name in _TEXT_OPS]

    # -----------------------------
    # output
    # -----------------------------
    def finalize(self) -> bytes:
        if self._data is not None:
            return self._data

        buf = io.BytesIO()
        c = rl_canvas.Canvas(buf, pagesize=self.pagesize)
        if self.title:
            c.setTitle(self.title)
        if self.author:
            c.setAuthor(self.author)

        total = len(self._pages)
        for n, ops in enumerate(self._pages, start=1):
            for op in ops:
                getattr(c, op.name)(*op.args, **dict(op.kwargs))
            if self.number_pages:
                c.setFont("Helvetica", 8)
                c.setFillColorRGB(0.4, 0.4, 0.4)
                c.drawRightString(self.width - 35, 18, f"Page {n} of {total}")
            c.showPage()
        c.save()

        self._data = buf.getvalue()
        return self._data
