#!/usr/bin/env python3
import tempfile
import unittest
from pathlib import Path
import sys


SCRIPT_DIR = Path(__file__).resolve().parent
if str(SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR))

import sky_properties as props
from sky_types import MalformedInputError, ParseError


class ReadPropertiesTests(unittest.TestCase):
    def test_trims_and_skips_noise(self) -> None:
        text = (
            "# generated by some tool\n"
            "\n"
            "  source =  ./sky1.png  \n"
            "no separator here\n"
            "blend\t=\tadd\n"
            "weather=clear=rain\n"
            "   \n"
        )
        self.assertEqual(
            props.read_properties_lines(text),
            [("source", "./sky1.png"), ("blend", "add"), ("weather", "clear=rain")],
        )


class EncodeTicksTests(unittest.TestCase):
    def test_six_o_clock_is_tick_zero(self) -> None:
        # "6:0:0" -> "600" + "0" -> 6000 -> 6000 + round(0) -> (6000 + 18000) % 24000
        self.assertEqual(props.encode_ticks("6:0:0"), 0)

    def test_minutes_scale_to_ticks(self) -> None:
        # "6:30" -> 6300 -> 6000 + round(300 / 3 * 5) = 6500 -> 500
        self.assertEqual(props.encode_ticks("6:30"), 500)
        # "5:15" -> 5150 -> 5000 + 250 -> 23250
        self.assertEqual(props.encode_ticks("5:15"), 23250)
        # "18:00" -> 18000 -> 12000
        self.assertEqual(props.encode_ticks("18:00"), 12000)

    def test_digits_are_concatenated_positionally(self) -> None:
        # "1:2:3" -> "1230" rather than any arithmetic combination.
        self.assertEqual(props.encode_ticks("1:2:3"), (1000 + round(230 / 3 * 5) + 18000) % 24000)

    def test_escaped_colons(self) -> None:
        self.assertEqual(props.encode_ticks("6\\:30"), 500)

    def test_rejects_non_numeric(self) -> None:
        for token in ("dawn", "6:3a", "6.30:00"):
            with self.subTest(token=token):
                with self.assertRaises(ParseError):
                    props.encode_ticks(token)


class MapPropertiesTests(unittest.TestCase):
    def test_defaults(self) -> None:
        descriptor, source = props.map_properties([], default_source="sky1")
        self.assertEqual(source, "sky1")
        self.assertEqual(descriptor["schemaVersion"], 2)
        self.assertEqual(descriptor["type"], "square-textured")
        self.assertEqual(descriptor["conditions"], {"worlds": ["minecraft:overworld"]})
        self.assertIs(descriptor["blend"], True)
        properties = descriptor["properties"]
        self.assertEqual(properties["blend"], {"type": "add"})
        self.assertEqual(properties["rotation"]["axis"], [0.0, 180.0, 0.0])
        self.assertEqual(properties["rotation"]["static"], [1, 1, 1])
        self.assertIs(properties["sunSkyTint"], False)

    def test_defaults_are_not_shared(self) -> None:
        first, _ = props.map_properties([("weather", "rain")], default_source="a")
        second, _ = props.map_properties([], default_source="b")
        self.assertIn("weather", first["conditions"])
        self.assertNotIn("weather", second["conditions"])

    def test_key_table(self) -> None:
        entries = [
            ("source", "./stars.png"),
            ("blend", "multiply"),
            ("rotate", "true"),
            ("speed", "2.5"),
            ("axis", "0.0 1.0 0.5"),
            ("weather", "clear rain"),
            ("biomes", "plains desert"),
            ("heights", "0-64 ignored 100.5-200"),
            ("transition", "1"),
            ("mystery", "value"),
        ]
        descriptor, source = props.map_properties(entries, default_source="sky1")
        self.assertEqual(source, "./stars")
        properties = descriptor["properties"]
        self.assertEqual(properties["blend"]["type"], "multiply")
        self.assertIs(properties["shouldRotate"], True)
        self.assertEqual(properties["rotation"]["rotationSpeed"], 2.5)
        self.assertEqual(properties["rotation"]["axis"], [0.0, 180.0, 90.0])
        conditions = descriptor["conditions"]
        self.assertEqual(conditions["weather"], ["clear", "rain"])
        self.assertEqual(conditions["biomes"], ["plains", "desert"])
        self.assertEqual(
            conditions["heights"],
            [{"min": 0.0, "max": 64.0}, {"min": 100.5, "max": 200.0}],
        )
        self.assertNotIn("transition", properties)
        self.assertNotIn("mystery", properties)

    def test_rotate_other_than_true_is_false(self) -> None:
        descriptor, _ = props.map_properties([("rotate", "yes")], default_source="s")
        self.assertIs(descriptor["properties"]["shouldRotate"], False)

    def test_fades_and_derived_start_fade_out(self) -> None:
        entries = [
            ("startFadeIn", "6:00"),
            ("endFadeIn", "6:30"),
            ("endFadeOut", "18:00"),
        ]
        descriptor, _ = props.map_properties(entries, default_source="s")
        fade = descriptor["properties"]["fade"]
        self.assertEqual(fade["startFadeIn"], 0)
        self.assertEqual(fade["endFadeIn"], 500)
        self.assertEqual(fade["endFadeOut"], 12000)
        self.assertEqual(fade["startFadeOut"], (12000 - 500 + 0 + 24000) % 24000)

    def test_explicit_start_fade_out_is_kept(self) -> None:
        descriptor, _ = props.map_properties(
            [("startFadeOut", "17:00"), ("endFadeOut", "18:00")],
            default_source="s",
        )
        self.assertEqual(descriptor["properties"]["fade"]["startFadeOut"], props.encode_ticks("17:00"))

    def test_missing_fades_use_sentinels(self) -> None:
        descriptor, _ = props.map_properties([], default_source="s")
        self.assertEqual(descriptor["properties"]["fade"], {"startFadeOut": 23999})

    def test_bad_numbers_raise_parse_error(self) -> None:
        cases = [
            ("speed", "notanumber"),
            ("axis", "0 1"),
            ("axis", "0 x 1"),
            ("heights", "low-64"),
            ("startFadeIn", "noon"),
            ("speed", "nan"),
            ("axis", "inf 0 0"),
            ("heights", "0-1e400"),
        ]
        for option, value in cases:
            with self.subTest(option=option, value=value):
                with self.assertRaises(ParseError) as ctx:
                    props.map_properties([(option, value)], default_source="s")
                self.assertEqual(ctx.exception.option, option)

    def test_too_short_source_is_malformed(self) -> None:
        with self.assertRaises(MalformedInputError):
            props.map_properties([("source", ".png")], default_source="s")


class ResolveSourceTests(unittest.TestCase):
    def test_relative_source(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            pack = Path(temp_dir)
            world = pack / "assets" / "minecraft" / "optifine" / "sky" / "world0"
            world.mkdir(parents=True)
            (world / "foo.png").write_bytes(b"png")
            resolved = props.resolve_source("./foo", world / "sky1.properties", pack, "fsb")

            self.assertEqual(resolved.resource_id, "fsb:sky/foo")
            self.assertEqual(resolved.image_path, world / "foo.png")
            self.assertEqual(resolved.output_dir, Path(""))
            self.assertEqual(resolved.stem, "foo")
            self.assertEqual(resolved.texture_id("top"), "fsb:sky/foo_top.png")

    def test_relative_source_in_subfolder(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            pack = Path(temp_dir)
            resolved = props.resolve_source("./layers/night", pack / "sky1.properties", pack)

            self.assertEqual(resolved.resource_id, "fabricskyboxes:sky/layers/night")
            self.assertEqual(resolved.output_dir, Path("layers"))
            self.assertEqual(resolved.stem, "night")
            self.assertIsNone(resolved.image_path)
            self.assertEqual(resolved.expected_path, pack / "layers" / "night.png")

    def test_rooted_source_falls_back_to_minecraft_assets(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            pack = Path(temp_dir)
            image = pack / "assets" / "minecraft" / "optifine" / "sky" / "world0" / "sky1.png"
            image.parent.mkdir(parents=True)
            image.write_bytes(b"png")
            resolved = props.resolve_source(
                "optifine/sky/world0/sky1",
                image.parent / "sky1.properties",
                pack,
            )

            self.assertEqual(resolved.resource_id, "fabricskyboxes:sky/optifine/sky/world0/sky1")
            self.assertEqual(resolved.output_dir, Path("optifine/sky/world0"))
            self.assertEqual(resolved.image_path, image)

    def test_rooted_source_prefers_pack_root(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            pack = Path(temp_dir)
            image = pack / "textures" / "sky.png"
            image.parent.mkdir(parents=True)
            image.write_bytes(b"png")
            resolved = props.resolve_source("/textures/sky", pack / "a.properties", pack)

            self.assertEqual(resolved.resource_id, "fabricskyboxes:sky/textures/sky")
            self.assertEqual(resolved.image_path, image)

    def test_source_without_folder_is_malformed(self) -> None:
        with self.assertRaises(MalformedInputError):
            props.resolve_source("sky1", Path("sky1.properties"), Path("."))

    def test_parent_directory_parts_are_malformed(self) -> None:
        for source in ("./../x", "/../../x", "optifine/../../x", "./layers/../../x"):
            with self.subTest(source=source):
                with self.assertRaises(MalformedInputError):
                    props.resolve_source(source, Path("pack/sky1.properties"), Path("pack"))


class BuildDescriptorTests(unittest.TestCase):
    def test_textures_and_blend(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            properties = Path(temp_dir) / "sky1.properties"
            properties.write_text("source=./foo.png\nstartFadeIn=6:0:0\nblend=add\n", encoding="utf-8")
            descriptor, sky_source = props.build_sky_descriptor(properties, Path(temp_dir))

        self.assertEqual(descriptor["textures"]["top"], "fabricskyboxes:sky/foo_top.png")
        self.assertEqual(
            list(descriptor["textures"]),
            ["top", "bottom", "north", "south", "east", "west"],
        )
        self.assertEqual(descriptor["properties"]["blend"]["type"], "add")
        self.assertEqual(descriptor["properties"]["fade"]["startFadeIn"], 0)
        self.assertIsNone(sky_source.image_path)


if __name__ == "__main__":
    unittest.main()
