import struct

import numpy as np
import pytest

from wmo_exporter.reader import (
    group_file_path,
    load_wmo,
    parse_string_table,
    parse_wmo_group,
    parse_wmo_root,
    scan_chunks,
)


class DictSource:
    def __init__(self, files):
        self.files = files

    def read_file(self, path):
        return self.files.get(path)


def test_scan_chunks_reverses_magic_and_stops_on_truncation(binaries):
    data = binaries.chunk(b"MVER", struct.pack("<I", 17)) + binaries.chunk(b"MOHD", b"\x00" * 64)
    truncated = data + b"XTOM" + struct.pack("<I", 1000) + b"\x00" * 10

    chunks = list(scan_chunks(truncated))

    assert [c[0] for c in chunks] == [b"MVER", b"MOHD"]
    assert chunks[0][1:] == (8, 4)


def test_string_table_offsets():
    blob = b"\x00\x00hall\x00\x00\x00\x00antiportal\x00"

    assert parse_string_table(blob) == [(2, "hall"), (11, "antiportal")]


def test_parse_root_with_texture_table_and_doodad_names(binaries):
    textures, tex_offsets = binaries.string_table("Textures\\Stone.blp", "Textures\\Wood.blp")
    names, name_offsets = binaries.string_table("main hall", "antiportal")
    doodads, doodad_offsets = binaries.string_table("World\\Chair.mdx")
    data = binaries.root_file(
        n_groups=2,
        group_names=names,
        materials=[binaries.momt(tex_offsets[1], blend_mode=1, shader=5, ground_type=2)],
        textures=textures,
        doodad_sets=[binaries.mods("Set_$DefaultGlobal", 0, 1)],
        definitions=[binaries.modd(doodad_offsets[0] | (0x20 << 24), (1.0, 2.0, 3.0),
                                   (0.0, 0.0, 0.0, 1.0), 1.5)],
        doodad_names=doodads,
    )

    root = parse_wmo_root(data)

    assert root["nGroups"] == 2
    assert root["materials"] == [{"shader": 5, "blendMode": 1,
                                  "texture1": tex_offsets[1], "groundType": 2}]
    assert root["textures"][1] == {"startOffset": tex_offsets[1], "filename": "Textures\\Wood.blp"}
    assert root["groupNames"][0] == {"offset": name_offsets[0], "name": "main hall"}
    assert root["doodadSets"] == [{"setName": "Set_$DefaultGlobal", "firstInstanceIndex": 0,
                                   "numDoodads": 1}]
    definition = root["doodadDefinitions"][0]
    assert definition["offset"] == doodad_offsets[0]
    assert definition["position"] == (1.0, 2.0, 3.0)
    assert definition["rotation"] == (0.0, 0.0, 0.0, 1.0)
    assert definition["scale"] == 1.5
    assert root["doodadNames"][0]["filename"] == "World\\Chair.mdx"
    assert root["doodadIds"] is None


def test_parse_root_with_file_ids(binaries):
    names, _ = binaries.string_table("hall")
    data = binaries.root_file(
        n_groups=1, group_names=names, materials=[binaries.momt(123456)], doodad_ids=[111, 222],
    )

    root = parse_wmo_root(data)

    assert root["textures"] is None
    assert root["doodadIds"] == [111, 222]
    assert root["doodadNames"] is None
    assert root["materials"][0]["texture1"] == 123456


def test_parse_group(binaries):
    data = binaries.group_file(
        name_offset=2,
        vertices=[(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 1.0, 0.0)],
        indices=[0, 1, 2],
        batches=[binaries.moba(0, 3, material_id=4, flags=2, box2_3=9)],
        uvs=[(0.5, 0.25)] * 3,
    )

    group = parse_wmo_group(data)

    assert group["nameOffset"] == 2
    assert group["vertices"].shape == (3, 3)
    np.testing.assert_array_equal(group["vertices"][1], [1.0, 0.0, 0.0])
    np.testing.assert_array_equal(group["uvs"][0], [0.5, 0.25])
    assert group["indices"].tolist() == [0, 1, 2]
    assert group["renderBatches"] == [{
        "possibleBox2_3": 9, "firstFace": 0, "numFaces": 1, "flags": 2, "materialID": 4,
    }]


def test_parse_group_without_mogp():
    group = parse_wmo_group(b"")

    assert group["vertices"] is None
    assert group["renderBatches"] is None


@pytest.mark.parametrize("root, index, expected", [
    ("World\\wmo\\Test\\Test.wmo", 0, "World\\wmo\\Test\\Test_000.wmo"),
    ("World/wmo/Test/TEST.WMO", 12, "World/wmo/Test/TEST_012.WMO"),
])
def test_group_file_path(root, index, expected):
    assert group_file_path(root, index) == expected


def test_load_wmo_reads_groups_and_tolerates_missing_ones(binaries, capsys):
    names, offsets = binaries.string_table("hall")
    root = binaries.root_file(n_groups=2, group_names=names, materials=[binaries.momt(1)])
    group = binaries.group_file(offsets[0], [(0.0, 0.0, 0.0)] * 3, [0, 1, 2],
                                [binaries.moba(0, 3, 0)])
    source = DictSource({"World\\Test.wmo": root, "World\\Test_000.wmo": group})

    wmo = load_wmo(source, "World\\Test.wmo")

    assert wmo["fileName"] == "World\\Test.wmo"
    assert len(wmo["groups"]) == 2
    assert wmo["groups"][0]["nameOffset"] == offsets[0]
    assert wmo["groups"][1]["vertices"] is None
    assert "Group 001 not found" in capsys.readouterr().out


def test_load_wmo_missing_root():
    assert load_wmo(DictSource({}), "World\\Nope.wmo") is None
