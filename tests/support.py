from pptx import Presentation
from pptx.enum.shapes import MSO_SHAPE
from pptx.util import Pt

from matrix_core.coordinate_converter import CoordinateConverter


def new_slide():
    prs = Presentation()
    slide = prs.slides.add_slide(prs.slide_layouts[6])
    return prs, slide


def add_box(slide, left, top, width=100, height=40, text=""):
    shape = slide.shapes.add_textbox(Pt(left), Pt(top), Pt(width), Pt(height))
    if text:
        shape.text_frame.text = text
    return shape


def add_rect(slide, left, top, width=100, height=40, shape_type=MSO_SHAPE.RECTANGLE):
    return slide.shapes.add_shape(shape_type, Pt(left), Pt(top), Pt(width), Pt(height))


def add_table(slide, rows, columns, left, top, width, height, text=True):
    frame = slide.shapes.add_table(rows, columns, Pt(left), Pt(top), Pt(width), Pt(height))
    if text:
        for r in range(rows):
            for c in range(columns):
                frame.table.cell(r, c).text_frame.text = f"r{r}c{c}"
    return frame


def add_grid(slide, rows, columns, left=50, top=50, width=100, height=40, spacing=10):
    """Boxes labelled 'r{row}c{column}' laid out on a regular lattice"""
    return [
        [add_box(slide, left + c * (width + spacing), top + r * (height + spacing),
                 width, height, f"r{r}c{c}") for c in range(columns)]
        for r in range(rows)
    ]


def pt(emu):
    return CoordinateConverter.emu_to_points(emu)


def geometry(shape):
    """(left, top, width, height) of a raw python-pptx shape in points"""
    return pt(shape.left), pt(shape.top), pt(shape.width), pt(shape.height)


def shapes_named(slide, prefix):
    return [shape for shape in slide.shapes if shape.name.startswith(prefix)]


def tables(slide):
    return [shape for shape in slide.shapes if shape.has_table]
