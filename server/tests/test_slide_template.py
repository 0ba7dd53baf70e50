"""
Tests for slide hydration and the pure slide/carousel transforms.
"""

import pytest

from carousel.schemas.slide import CURRENT_VERSION, Carousel, Slide, StylePreset
from carousel.services import slide_template


# ---------------------------------------------------------------------------
# Hydration
# ---------------------------------------------------------------------------

class TestHydrate:
    def test_empty_record_gets_all_defaults(self):
        slide = slide_template.hydrate({})
        assert slide == Slide()
        assert slide.version == CURRENT_VERSION

    def test_camel_and_snake_keys(self):
        slide = slide_template.hydrate(
            {"bgColor": "#112233", "secondary_text": "sub", "textPosition": "bottom"}
        )
        assert slide.bg_color == "#112233"
        assert slide.secondary_text == "sub"
        assert slide.text_position == "bottom"

    def test_unknown_and_null_keys_are_dropped(self):
        slide = slide_template.hydrate({"legacyThing": 1, "font": None, "text": "hi"})
        assert slide.font == "font-sans"
        assert slide.text == "hi"

    def test_size_tokens_map_to_pixels(self):
        slide = slide_template.hydrate({"fontSize": "md", "secondaryFontSize": "xs"})
        assert slide.font_size == 32
        assert slide.secondary_font_size == 14

    def test_legacy_record_is_clamped(self):
        slide = slide_template.hydrate({"fontSize": 48, "secondaryFontSize": 28})
        assert slide.font_size == 32
        assert slide.secondary_font_size == 20

    def test_legacy_large_token_is_clamped(self):
        assert slide_template.hydrate({"fontSize": "lg"}).font_size == 32

    def test_current_version_keeps_large_type(self):
        slide = slide_template.hydrate(
            {"fontSize": 48, "secondaryFontSize": 28, "version": CURRENT_VERSION}
        )
        assert slide.font_size == 48
        assert slide.secondary_font_size == 28

    def test_hydrating_twice_is_stable(self):
        once = slide_template.hydrate({"fontSize": 30, "lineHeight": "1.5"})
        assert slide_template.hydrate(once) == once
        assert once.line_height == 1.5

    def test_unreadable_line_height_falls_back_to_default(self):
        slide = slide_template.hydrate({"lineHeight": "normal", "secondaryLineHeight": "1.6"})
        assert slide.line_height == 1.2
        assert slide.secondary_line_height == 1.6

    def test_numeric_strings_and_floats(self):
        slide = slide_template.hydrate({"fontSize": "28", "secondaryFontSize": 18.6})
        assert slide.font_size == 28
        assert slide.secondary_font_size == 19

    def test_hydrate_document(self):
        doc = slide_template.hydrate_document(
            {"id": "x", "topic": "t", "slides": [{"text": "a"}, {"fontSize": 50}]}
        )
        assert [s.text for s in doc.slides] == ["a", ""]
        assert doc.slides[1].font_size == 32


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

class TestPresets:
    def test_capture_preset_copies_style_only(self):
        slide = Slide(text="hello", bg_image="/api/files/bg.png", font_size=40, bg_color="#FF0000")
        preset = slide_template.capture_preset(slide, "Bold red")
        assert preset.name == "Bold red"
        assert preset.font_size == 40
        assert not hasattr(preset, "text")

    def test_apply_preset_keeps_content_and_background(self):
        slide = Slide(
            text="keep me",
            secondary_text="me too",
            use_only_main=True,
            bg_image="https://cdn.example.com/a.jpg",
            font_size=20,
        )
        preset = StylePreset(name="p", font_size=44, bg_color="#123456", alignment="left")
        result = slide_template.apply_preset(slide, preset)
        assert result.text == "keep me"
        assert result.secondary_text == "me too"
        assert result.use_only_main is True
        assert result.bg_image == "https://cdn.example.com/a.jpg"
        assert result.font_size == 44
        assert result.bg_color == "#123456"
        assert result.alignment == "left"

    def test_apply_preset_from_stored_dict(self):
        slide = Slide(text="x")
        result = slide_template.apply_preset(slide, {"fontSize": 26, "text": "ignored"})
        assert result.font_size == 26
        assert result.text == "x"

    def test_apply_style_to_all(self, carousel):
        source = carousel.slides[1].model_copy(update={"bg_color": "#ABCDEF", "font": "font-serif"})
        doc = carousel.model_copy(update={"slides": [carousel.slides[0], source, carousel.slides[2]]})
        result = slide_template.apply_style_to_all(doc, 1)
        assert {s.bg_color for s in result.slides} == {"#ABCDEF"}
        assert {s.font for s in result.slides} == {"font-serif"}
        assert [s.text for s in result.slides] == ["one", "two", "three"]
        # Input is untouched
        assert doc.slides[0].bg_color == "#09090B"


# ---------------------------------------------------------------------------
# Document edits
# ---------------------------------------------------------------------------

class TestEdits:
    def test_update_slide(self, carousel):
        result = slide_template.update_slide(carousel, 0, {"fontSize": 40, "text": "new"})
        assert result.slides[0].font_size == 40
        assert result.slides[0].text == "new"
        assert carousel.slides[0].text == "one"

    def test_update_unknown_field_rejected(self, carousel):
        with pytest.raises(ValueError):
            slide_template.update_slide(carousel, 0, {"nope": 1})

    def test_update_version_rejected(self, carousel):
        with pytest.raises(ValueError):
            slide_template.update_slide(carousel, 0, {"version": 1})

    def test_update_out_of_range(self, carousel):
        with pytest.raises(IndexError):
            slide_template.update_slide(carousel, 5, {"text": "x"})

    def test_update_invalid_value(self, carousel):
        with pytest.raises(ValueError):
            slide_template.update_slide(carousel, 0, {"bgZoom": 5})

    def test_seed_slides(self):
        slides = slide_template.seed_slides(
            [{"primaryText": " A ", "secondaryText": "b"}, {"primaryText": "C"}]
        )
        assert [s.text for s in slides] == ["A", "C"]
        assert slides[0].use_only_main is False
        assert slides[1].use_only_main is True
        assert slides[0].font_size == Slide().font_size

    def test_add_slide_copies_neighbour_style(self):
        doc = Carousel(slides=[Slide(text="a", bg_color="#FF0000", font_size=28)])
        result = slide_template.add_slide(doc)
        assert len(result.slides) == 2
        assert result.slides[1].bg_color == "#FF0000"
        assert result.slides[1].font_size == 28
        assert result.slides[1].text == ""

    def test_add_slide_to_empty_carousel(self):
        result = slide_template.add_slide(Carousel())
        assert result.slides == [Slide()]

    def test_duplicate_remove_move(self, carousel):
        doc = slide_template.duplicate_slide(carousel, 0)
        assert [s.text for s in doc.slides] == ["one", "one", "two", "three"]
        doc = slide_template.remove_slide(doc, 1)
        assert [s.text for s in doc.slides] == ["one", "two", "three"]
        doc = slide_template.move_slide(doc, 2, 0)
        assert [s.text for s in doc.slides] == ["three", "one", "two"]

    def test_move_out_of_range(self, carousel):
        with pytest.raises(IndexError):
            slide_template.move_slide(carousel, 0, 3)
