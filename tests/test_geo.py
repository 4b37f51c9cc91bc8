import random

import pytest

from backend.zillow.filters import build_search_url, decode_box, encode_box, page_from_url
from backend.zillow.geo import BoundingBox, split_box

from conftest import SEARCH_URL


def test_split_order_and_midlines():
    box = BoundingBox(-122.6, 37.9, -122.2, 37.6)
    nw, ne, sw, se = split_box(box)
    mx, my = (-122.6 + -122.2) / 2, (37.9 + 37.6) / 2

    assert nw == BoundingBox(-122.6, 37.9, mx, my)
    assert ne == BoundingBox(mx, 37.9, -122.2, my)
    assert sw == BoundingBox(-122.6, my, mx, 37.6)
    assert se == BoundingBox(mx, my, -122.2, 37.6)


@pytest.mark.parametrize("seed", range(25))
def test_split_reconstructs_parent(seed):
    rng = random.Random(seed)
    box = BoundingBox(*(rng.uniform(-180, 180) for _ in range(4)))
    children = split_box(box)

    assert len(children) == 4
    xs = {c.left for c in children} | {c.right for c in children}
    ys = {c.top for c in children} | {c.bottom for c in children}
    assert xs == {box.left, box.mid_x, box.right}
    assert ys == {box.top, box.mid_y, box.bottom}
    # west/east halves meet exactly on the midline, as do north/south
    assert children[0].right == children[1].left == box.mid_x
    assert children[0].bottom == children[2].top == box.mid_y


def test_box_is_immutable():
    box = BoundingBox(1, 2, 3, 4)
    with pytest.raises(Exception):
        box.left = 5


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), "1.0", None, True])
def test_box_rejects_non_finite_or_non_numeric(bad):
    with pytest.raises((TypeError, ValueError)):
        BoundingBox(bad, 0, 1, 1)


@pytest.mark.parametrize("seed", range(50))
def test_url_round_trip_random_boxes(seed):
    rng = random.Random(1000 + seed)
    scale = 10 ** rng.randint(-7, 3)
    box = BoundingBox(*(rng.uniform(-1, 1) * scale for _ in range(4)))

    assert decode_box(encode_box(SEARCH_URL, box)) == box
    assert decode_box(build_search_url(box)) == box


def test_encode_replaces_rect_and_drops_pagination():
    url = "https://www.zillow.com/homes/for_sale/-122.6,37.9,-122.2,37.6_rect/3_p/?searchQueryState=x"
    out = encode_box(url, BoundingBox(-1.5, 2.0, 3.25, -4.0))

    assert out == "https://www.zillow.com/homes/for_sale/-1.5,2.0,3.25,-4.0_rect/?searchQueryState=x"
    assert page_from_url(out) == 1


def test_encode_appends_rect_when_missing():
    out = encode_box("https://www.zillow.com/homes/for_sale", BoundingBox(1, 2, 3, 4))
    assert out == "https://www.zillow.com/homes/for_sale/1.0,2.0,3.0,4.0_rect/"


def test_decode_without_rect():
    assert decode_box("https://www.zillow.com/homes/San-Francisco,-CA_rb/") is None


def test_decode_scientific_notation():
    box = BoundingBox(1e-05, -2.5e-07, 3.0, 4.0)
    assert decode_box(encode_box(SEARCH_URL, box)) == box


def test_page_from_url():
    assert page_from_url(SEARCH_URL) == 1
    assert page_from_url(SEARCH_URL + "7_p/") == 7
