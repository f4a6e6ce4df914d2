import io
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from PIL import Image

from frames.db import FramesStore
from frames.errors import NotFoundError, ValidationError


def _make_picture(size=(640, 480), color="red", fmt="JPEG"):
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


class FramesPictureTests(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = str(Path(self.temp_dir.name) / "frames.db")
        patcher = mock.patch("frames.db.get_db_path", return_value=self.db_path)
        self.addCleanup(patcher.stop)
        patcher.start()
        self.store = FramesStore()

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_picture_is_stored_with_its_dimensions(self):
        picture = _make_picture()

        entry = self.store.create_entry("sunset", "", picture=picture)

        self.assertTrue(entry["has_picture"])
        self.assertEqual(entry["picture_format"], "JPEG")
        self.assertEqual((entry["picture_width"], entry["picture_height"]), (640, 480))
        self.assertEqual(self.store.get_entry_picture(entry["id"]), picture)

    def test_thumbnail_is_a_scaled_png(self):
        entry = self.store.create_entry("wide", "", picture=_make_picture(size=(1024, 512)))

        thumb = self.store.get_entry_thumbnail(entry["id"])

        self.assertEqual((thumb["width"], thumb["height"]), (256, 128))
        with Image.open(io.BytesIO(thumb["png"])) as img:
            self.assertEqual(img.format, "PNG")
            self.assertEqual(img.size, (256, 128))

    def test_small_pictures_are_not_upscaled(self):
        entry = self.store.create_entry("tiny", "", picture=_make_picture(size=(32, 16), fmt="PNG"))

        thumb = self.store.get_entry_thumbnail(entry["id"])

        self.assertEqual((thumb["width"], thumb["height"]), (32, 16))

    def test_entry_without_picture_has_no_picture_or_thumbnail(self):
        entry = self.store.create_entry("text only")

        self.assertFalse(entry["has_picture"])
        self.assertIsNone(self.store.get_entry_picture(entry["id"]))
        self.assertIsNone(self.store.get_entry_thumbnail(entry["id"]))

    def test_undecodable_picture_is_rejected_without_side_effect(self):
        for bad in [b"not an image", b"", "a string"]:
            with self.assertRaises(ValidationError):
                self.store.create_entry("broken", "", picture=bad)

        self.assertEqual(self.store.list_entries(), [])

    def test_truncated_picture_is_rejected(self):
        picture = _make_picture(fmt="PNG")

        with self.assertRaises(ValidationError):
            self.store.create_entry("half", "", picture=picture[: len(picture) // 2])

    def test_picture_lookups_for_unknown_entry_raise_not_found(self):
        with self.assertRaises(NotFoundError):
            self.store.get_entry_picture("ghost")
        with self.assertRaises(NotFoundError):
            self.store.get_entry_thumbnail("ghost")

    def test_list_entries_can_filter_to_entries_with_pictures(self):
        self.store.create_entry("plain")
        with_pic = self.store.create_entry("photo", "", picture=_make_picture())

        self.assertEqual([e["id"] for e in self.store.list_entries(has_picture=True)], [with_pic["id"]])

    def test_custom_thumbnail_width(self):
        store = FramesStore(db_path=str(Path(self.temp_dir.name) / "small.db"), thumbnail_width=64)

        entry = store.create_entry("small thumb", "", picture=_make_picture(size=(640, 480)))

        thumb = store.get_entry_thumbnail(entry["id"])
        self.assertEqual((thumb["width"], thumb["height"]), (64, 48))


if __name__ == "__main__":
    unittest.main()
