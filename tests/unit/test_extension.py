import pytest
from PIL import Image

from src.engines.imaging.extension import (
    MAX_OUTPAINT_PIXELS,
    MAX_SIDE_EXTENSION,
    ExtensionPlan,
    calc_extensions,
    outpaint_scale,
    prepare_for_outpaint,
    scale_plan,
)


def test_square_to_widescreen_pads_left_and_right():
    plan = calc_extensions(1000, 1000, 16, 9)

    assert (plan.left, plan.right, plan.top, plan.bottom) == (389, 389, 0, 0)
    assert (plan.new_width, plan.new_height) == (1778, 1000)


def test_wide_to_square_pads_top_and_bottom():
    plan = calc_extensions(1920, 1080, 1, 1)

    assert (plan.top, plan.bottom) == (420, 420)
    assert plan.left == plan.right == 0


def test_odd_padding_goes_to_trailing_edge():
    plan = calc_extensions(1001, 1000, 1, 1)
    assert (plan.top, plan.bottom) == (0, 1)


def test_matching_ratio_is_noop():
    plan = calc_extensions(1920, 1080, 16, 9)
    assert plan.is_noop
    assert plan.area == 1920 * 1080


def test_invalid_input():
    with pytest.raises(ValueError):
        calc_extensions(0, 100, 1, 1)
    with pytest.raises(ValueError):
        calc_extensions(100, 100, 16, 0)


def test_small_plan_is_left_alone():
    image = Image.new("RGB", (100, 100))
    plan = calc_extensions(100, 100, 16, 9)

    prepared_image, prepared = prepare_for_outpaint(image, plan)

    assert prepared_image is image
    assert prepared == plan
    assert outpaint_scale(plan) == 1.0


def test_oversized_side_extension_triggers_scale():
    plan = ExtensionPlan(width=500, height=500, left=4096)
    assert outpaint_scale(plan) == pytest.approx(0.5)


@pytest.mark.parametrize(
    "size,ratio",
    [
        ((3000, 3000), (16, 9)),
        ((3000, 2000), (9, 16)),
        ((2500, 1000), (1, 1)),
        ((1200, 3000), (21, 9)),
        ((2048, 2048), (3, 1)),
        ((1999, 1333), (4, 5)),
    ],
)
def test_prepared_plan_respects_ceilings(size, ratio):
    image = Image.new("RGB", size)
    plan = calc_extensions(*size, *ratio)

    prepared_image, prepared = prepare_for_outpaint(image, plan)

    assert prepared.area <= MAX_OUTPAINT_PIXELS
    assert max(prepared.paddings().values()) <= MAX_SIDE_EXTENSION
    assert prepared_image.size == (prepared.width, prepared.height)
    assert prepared.scale < 1
    # Uniform scaling keeps the target shape within rounding
    assert prepared.new_width / prepared.new_height == pytest.approx(ratio[0] / ratio[1], rel=0.01)


def test_custom_ceilings():
    image = Image.new("RGB", (400, 400))
    plan = calc_extensions(400, 400, 2, 1)

    _, prepared = prepare_for_outpaint(image, plan, max_area=100_000, max_extension=100)

    assert prepared.area <= 100_000
    assert max(prepared.paddings().values()) <= 100


def test_scale_plan_matches_prepared_plan_without_resizing():
    image = Image.new("RGB", (3000, 2000))
    plan = calc_extensions(3000, 2000, 9, 16)

    _, prepared = prepare_for_outpaint(image, plan)

    assert scale_plan(plan) == prepared
    assert scale_plan(calc_extensions(100, 100, 16, 9)) == calc_extensions(100, 100, 16, 9)
