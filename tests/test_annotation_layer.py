"""
Tests for region overlay rendering.
"""

import numpy as np

from visiontrack import PolyRectRenderer, TrackedPolyRect, TrackedPolyRectStyle, fit_image_area

GREEN = (0, 255, 0)
CYAN = (255, 255, 0)


def _lit(frame):
    return int(np.count_nonzero(frame.any(axis=2)))


def test_fit_image_area():
    # Wide image in a square view: letterboxed top and bottom
    assert fit_image_area((200, 100), (400, 400)) == (0, 100, 400, 200)
    # Tall image in a square view: pillarboxed left and right
    assert fit_image_area((100, 200), (400, 400)) == (100, 0, 200, 400)
    assert fit_image_area((0, 0), (400, 400)) == (0, 0, 0, 0)


def test_solid_outline_uses_region_color():
    frame = np.zeros((100, 100, 3), dtype=np.uint8)
    rect = TrackedPolyRect.from_bounding_box((0.2, 0.2, 0.6, 0.6), GREEN)

    PolyRectRenderer(draw_center_line=False).render(frame, [rect])

    assert _lit(frame) > 0
    # Top edge sits at pixel row 20 (y flipped), between x = 20 and 80
    assert frame[20, 50, 1] > 200
    assert frame[:, :, 0].max() == 0 and frame[:, :, 2].max() == 0
    # Interior untouched
    assert not frame[50, 50].any()


def test_dashed_outline_draws_less_than_solid():
    solid = np.zeros((200, 200, 3), dtype=np.uint8)
    dashed = np.zeros((200, 200, 3), dtype=np.uint8)
    box = (0.1, 0.1, 0.8, 0.8)
    renderer = PolyRectRenderer(draw_center_line=False)

    renderer.render(solid, [TrackedPolyRect.from_bounding_box(box, GREEN)])
    renderer.render(dashed, [TrackedPolyRect.from_bounding_box(box, GREEN, TrackedPolyRectStyle.DASHED)])

    print(f"  Lit pixels: solid={_lit(solid)}, dashed={_lit(dashed)}")
    assert 0 < _lit(dashed) < _lit(solid)


def test_center_line_joins_regions():
    frame = np.zeros((200, 200, 3), dtype=np.uint8)
    rects = [
        TrackedPolyRect.from_bounding_box((0.1, 0.1, 0.2, 0.2), GREEN),
        TrackedPolyRect.from_bounding_box((0.7, 0.7, 0.2, 0.2), CYAN),
    ]

    PolyRectRenderer().render(frame, rects)

    # Midpoint between the two centres is only on the red line
    mid = frame[100, 100]
    assert mid[2] > 0 and mid[0] == 0 and mid[1] == 0


def test_rubber_band_and_image_area():
    frame = np.zeros((100, 200, 3), dtype=np.uint8)
    renderer = PolyRectRenderer()

    renderer.render(frame, [], rubber_band=(10, 10, 50, 30))
    assert frame[:, :, 0].max() > 0          # blue selection
    assert frame[:, :, 1].max() == 0

    # Regions map into the image area, not the whole frame
    frame[:] = 0
    rect = TrackedPolyRect.from_bounding_box((0.0, 0.0, 1.0, 1.0), GREEN)
    renderer.render(frame, [rect], image_area=(50, 0, 100, 100))
    assert not frame[:, :40].any()
    assert not frame[:, 160:].any()


def test_render_counter():
    frame = np.zeros((120, 200, 3), dtype=np.uint8)
    PolyRectRenderer().render_counter(frame, 42)
    assert frame[:40, :120].max() > 150
