import io
import struct
from pathlib import Path
from types import SimpleNamespace

import numpy as np
import pytest
from PIL import Image


# ── Decoded WMO builders ────────────────────────────────────────────────────

def make_group(name_offset, vertices, indices, batches=None, normals=None, uvs=None):
    vertices = np.asarray(vertices, dtype=np.float32).reshape(-1, 3)
    n = len(vertices)
    if normals is None:
        normals = np.tile(np.array([0.0, 0.0, 1.0], dtype=np.float32), (n, 1))
    if uvs is None:
        uvs = np.zeros((n, 2), dtype=np.float32)
    return {
        "nameOffset": name_offset,
        "vertices": vertices,
        "normals": np.asarray(normals, dtype=np.float32).reshape(-1, 3),
        "uvs": np.asarray(uvs, dtype=np.float32).reshape(-1, 2),
        "indices": np.asarray(indices, dtype=np.uint16),
        "renderBatches": batches,
    }


def make_batch(first_face, num_faces, material_id, flags=0, box2_3=0):
    return {
        "firstFace": first_face,
        "numFaces": num_faces,
        "materialID": material_id,
        "flags": flags,
        "possibleBox2_3": box2_3,
    }


def make_material(texture1, blend_mode=0, shader=0, ground_type=0):
    return {"texture1": texture1, "blendMode": blend_mode, "shader": shader, "groundType": ground_type}


def make_definition(offset, position=(1.0, 2.0, 3.0), rotation=(0.0, 0.0, 0.0, 1.0), scale=1.0):
    return {"offset": offset, "position": position, "rotation": rotation, "scale": scale}


def make_wmo(groups=(), group_names=(), materials=None, textures=None, doodad_sets=(),
             definitions=(), doodad_ids=None, doodad_names=None):
    return {
        "fileName": "World/wmo/Test/Test.wmo",
        "groups": list(groups),
        "groupNames": list(group_names),
        "materials": materials,
        "textures": textures,
        "doodadSets": list(doodad_sets),
        "doodadDefinitions": list(definitions),
        "doodadIds": doodad_ids,
        "doodadNames": doodad_names,
    }


TRIANGLE = [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 1.0, 0.0)]


@pytest.fixture
def wmo_parts():
    return SimpleNamespace(
        group=make_group,
        batch=make_batch,
        material=make_material,
        definition=make_definition,
        wmo=make_wmo,
        triangle=TRIANGLE,
    )


# ── Fake collaborators ──────────────────────────────────────────────────────

class RecordingTextureExporter:
    """Writes a placeholder file and records every call."""
    def __init__(self, fail_on=()):
        self.calls = []
        self.fail_on = set(fail_on)

    def __call__(self, texture_ref, dest_path):
        self.calls.append((texture_ref, Path(dest_path)))
        if texture_ref in self.fail_on:
            raise ValueError(f"cannot decode {texture_ref}")
        Path(dest_path).write_bytes(b"png")


class RecordingModelExporter:
    """
    Creates ``<name>.obj`` for the identifiers in ``available``. With
    ``partial`` it writes the start of the file and then raises.
    """
    def __init__(self, available=(), raises=False, partial=False):
        self.calls = []
        self.available = dict(available)
        self.raises = raises
        self.partial = partial

    def __call__(self, identifier, output_dir):
        self.calls.append((identifier, Path(output_dir)))
        if self.partial and identifier in self.available:
            (Path(output_dir) / self.available[identifier]).write_text("# obj\nv 0 0\n")
            raise IndexError("index out of range")
        if self.raises:
            raise RuntimeError("model exporter crashed")
        if identifier not in self.available:
            return False
        (Path(output_dir) / self.available[identifier]).write_text("# obj\n")
        return True


@pytest.fixture
def texture_exporter():
    return RecordingTextureExporter()


@pytest.fixture
def fakes():
    return SimpleNamespace(textures=RecordingTextureExporter, models=RecordingModelExporter)


# ── Binary file builders ────────────────────────────────────────────────────

def chunk(magic, payload):
    return magic[::-1] + struct.pack("<I", len(payload)) + payload


def string_table(*names):
    """Two leading nulls, then each name null-terminated. Returns (blob, offsets)."""
    blob = b"\x00\x00"
    offsets = []
    for name in names:
        offsets.append(len(blob))
        blob += name.encode("ascii") + b"\x00"
    return blob, offsets


def momt_entry(texture1, blend_mode=0, shader=0, ground_type=0):
    return (struct.pack("<IIII", 0, shader, blend_mode, texture1)
            + struct.pack("<IIII", 0, 0, 0, 0)
            + struct.pack("<I", ground_type)
            + b"\x00" * 28)


def mods_entry(name, first, count):
    return name.encode("ascii").ljust(20, b"\x00") + struct.pack("<III", first, count, 0)


def modd_entry(offset, position, rotation, scale):
    return struct.pack("<I3f4ff4B", offset, *position, *rotation, scale, 255, 255, 255, 255)


def moba_entry(first_index, index_count, material_id, flags=0, box2_3=0):
    return struct.pack("<6hIHHHBB", 0, 0, 0, 0, 0, box2_3, first_index, index_count,
                       0, 0, flags, material_id)


def build_group_file(name_offset, vertices, indices, batches, normals=None, uvs=None):
    n = len(vertices)
    if normals is None:
        normals = [(0.0, 0.0, 1.0)] * n
    if uvs is None:
        uvs = [(0.0, 0.0)] * n
    sub = (chunk(b"MOVT", b"".join(struct.pack("<3f", *v) for v in vertices))
           + chunk(b"MONR", b"".join(struct.pack("<3f", *v) for v in normals))
           + chunk(b"MOTV", b"".join(struct.pack("<2f", *v) for v in uvs))
           + chunk(b"MOVI", struct.pack(f"<{len(indices)}H", *indices))
           + chunk(b"MOBA", b"".join(batches)))
    header = struct.pack("<II", name_offset, 0) + b"\x00" * 60
    return chunk(b"MVER", struct.pack("<I", 17)) + chunk(b"MOGP", header + sub)


def build_root_file(n_groups, group_names, materials, textures=None, doodad_sets=(),
                    definitions=(), doodad_names=None, doodad_ids=None):
    data = chunk(b"MVER", struct.pack("<I", 17))
    data += chunk(b"MOHD", struct.pack("<II", len(materials), n_groups) + b"\x00" * 56)
    if textures is not None:
        data += chunk(b"MOTX", textures)
    data += chunk(b"MOMT", b"".join(materials))
    data += chunk(b"MOGN", group_names)
    data += chunk(b"MODS", b"".join(doodad_sets))
    if doodad_names is not None:
        data += chunk(b"MODN", doodad_names)
    if doodad_ids is not None:
        data += chunk(b"MODI", struct.pack(f"<{len(doodad_ids)}I", *doodad_ids))
    data += chunk(b"MODD", b"".join(definitions))
    return data


def png_bytes(color=(255, 0, 0, 255)):
    buf = io.BytesIO()
    Image.new("RGBA", (4, 4), color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def binaries():
    return SimpleNamespace(
        chunk=chunk,
        string_table=string_table,
        momt=momt_entry,
        mods=mods_entry,
        modd=modd_entry,
        moba=moba_entry,
        group_file=build_group_file,
        root_file=build_root_file,
        png=png_bytes,
    )
