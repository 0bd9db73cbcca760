import re

from app.client.capture import Shape, Stroke, TextBox, WhiteboardPage, render_whiteboard_pdf


def page_count(pdf):
    return len(re.findall(rb"/Type /Page\b", pdf))


def test_renders_one_pdf_page_per_whiteboard_page():
    pages = [
        WhiteboardPage(
            strokes=[Stroke(points=[(10, 10), (200, 220), (400, 180)], color="#1d4ed8", width=3)],
            shapes=[Shape(kind="rect", x=50, y=50, w=300, h=120), Shape(kind="ellipse", x=500, y=400, w=80, h=80)],
            texts=[TextBox(x=60, y=700, text="x = 3")],
        ),
        WhiteboardPage(strokes=[Stroke(points=[(0, 0), (1200, 1600)])]),
    ]

    pdf = render_whiteboard_pdf(pages, title="Midterm", student_name="Alice Kim")

    assert pdf.startswith(b"%PDF")
    assert b"%%EOF" in pdf[-32:]
    assert page_count(pdf) == 2


def test_empty_submission_still_produces_a_page():
    pdf = render_whiteboard_pdf([])

    assert page_count(pdf) == 1


def test_bad_input_is_tolerated():
    page = WhiteboardPage(
        strokes=[Stroke(points=[(5, 5)])],
        shapes=[Shape(kind="star", x=0, y=0, w=10, h=10, color="not-a-color")],
    )

    pdf = render_whiteboard_pdf([page])

    assert page_count(pdf) == 1
