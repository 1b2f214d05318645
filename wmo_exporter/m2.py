"""
Static M2 doodad export to OBJ/MTL, used for the models a WMO places.

Only the base mesh is written: vertices, normals and first UV set from the
M2, triangles from the LOD 0 .skin file, one material per texture.
"""

import struct
from pathlib import Path, PureWindowsPath

import numpy as np

from .doodads import model_obj_name
from .geometry import convert_normals, convert_positions
from .materials import blp_to_png_bytes
from .writers import vertex_lines

# Header offsets of the M2Arrays used here
M2_VERTICES = 0x3C
M2_TEXTURES = 0x50
M2_TEXTURE_LOOKUP = 0x80

SKIN_VERTEX_LOOKUP = 0x04
SKIN_INDICES = 0x0C
SKIN_SUBMESHES = 0x1C
SKIN_BATCHES = 0x24

M2_VERTEX = "<3f8x3f2f8x"   # position, bone weights/indices, normal, uv0, uv1
M2_TEXTURE = "<4I"          # type, flags, filename length, filename offset
SKIN_SUBMESH = "<6H36x"     # id, level, vertex start/count, index start/count
SKIN_BATCH = "<Bb10H2x"


# ── M2 parser ───────────────────────────────────────────────────────────────

def m2array_span(data, header_offset):
    """(count, offset) of the M2Array stored at header_offset."""
    return struct.unpack_from("<II", data, header_offset)


def unpack_m2array(data, header_offset, fmt):
    """Unpack every element of an M2Array with a struct format."""
    count, offset = m2array_span(data, header_offset)
    end = offset + count * struct.calcsize(fmt)
    return list(struct.iter_unpack(fmt, data[offset:end]))


def parse_m2_vertices(data):
    """Positions, normals and first UV set as float32 arrays."""
    raw = np.array(unpack_m2array(data, M2_VERTICES, M2_VERTEX), dtype=np.float32).reshape(-1, 8)
    return {
        "positions": raw[:, 0:3],
        "normals": raw[:, 3:6],
        "uvs": raw[:, 6:8],
    }


def parse_m2_textures(data):
    """Texture filenames; non-file textures (type != 0) get an empty name."""
    textures = []
    for tex_type, _, name_len, name_ofs in unpack_m2array(data, M2_TEXTURES, M2_TEXTURE):
        raw = data[name_ofs:name_ofs + name_len] if tex_type == 0 else b""
        textures.append({
            "type": tex_type,
            "filename": raw.split(b"\x00", 1)[0].decode("ascii", errors="replace"),
        })
    return textures


def parse_m2_texture_combos(data):
    return [tex for (tex,) in unpack_m2array(data, M2_TEXTURE_LOOKUP, "<H")]


# ── .skin parser ─────────────────────────────────────────────────────────────

def parse_skin(data):
    """Parse a .skin file and return local-to-global map, indices, submeshes, batches."""
    if data[0:4] != b"SKIN":
        raise ValueError(f"Invalid .skin magic: {data[0:4]}")

    local_to_global = [v for (v,) in unpack_m2array(data, SKIN_VERTEX_LOOKUP, "<H")]
    indices = [i for (i,) in unpack_m2array(data, SKIN_INDICES, "<H")]

    submeshes = [
        {"level": s[1], "index_start": s[4], "index_count": s[5]}
        for s in unpack_m2array(data, SKIN_SUBMESHES, SKIN_SUBMESH)
    ]
    batches = [
        {"skin_section_index": b[3], "texture_combo_index": b[9]}
        for b in unpack_m2array(data, SKIN_BATCHES, SKIN_BATCH)
    ]
    return local_to_global, indices, submeshes, batches


def submesh_textures(batches, tex_combos):
    """Map submesh index -> texture index through the texture lookup table."""
    sub_to_tex = {}
    for batch in batches:
        combo_idx = batch["texture_combo_index"]
        tex_idx = tex_combos[combo_idx] if combo_idx < len(tex_combos) else -1
        sub_to_tex[batch["skin_section_index"]] = tex_idx
    return sub_to_tex


# ── OBJ output ──────────────────────────────────────────────────────────────

def texture_material_name(textures, tex_idx, model_stem):
    if 0 <= tex_idx < len(textures) and textures[tex_idx]["filename"]:
        return PureWindowsPath(textures[tex_idx]["filename"]).stem.lower()
    return f"{model_stem}_tex{tex_idx}"


def write_m2_obj(obj_path, mtl_path, source_name, vertices, local_to_global, indices,
                 submeshes, sub_to_tex, textures):
    """
    Write M2 geometry as OBJ + MTL. Returns the set of texture indices used.
    Both files are built in memory, so a bad skin index leaves nothing on disk.
    """
    positions = convert_positions(vertices["positions"])
    normals = convert_normals(vertices["normals"])
    uvs = vertices["uvs"]
    model_stem = obj_path.stem
    used_textures = set()

    obj_lines = [
        f"# Written by wmo_exporter. Original file: {source_name}",
        f"mtllib {mtl_path.name}",
        f"g {model_stem}",
    ]
    obj_lines.extend(vertex_lines(positions, uvs, normals))

    for si, sub in enumerate(submeshes):
        if sub["level"] != 0:
            continue
        tex_idx = sub_to_tex.get(si, -1)
        if tex_idx >= 0:
            used_textures.add(tex_idx)
            obj_lines.append(f"usemtl {texture_material_name(textures, tex_idx, model_stem)}")
        obj_lines.append("s 1")
        end = sub["index_start"] + sub["index_count"]
        for i in range(sub["index_start"], end - 2, 3):
            a, b, c = (local_to_global[indices[i + k]] + 1 for k in range(3))
            obj_lines.append(f"f {a}/{a}/{a} {b}/{b}/{b} {c}/{c}/{c}")

    mtl_lines = []
    for tex_idx in sorted(used_textures):
        name = texture_material_name(textures, tex_idx, model_stem)
        mtl_lines.append(f"newmtl {name}")
        mtl_lines.append("illum 2")
        if 0 <= tex_idx < len(textures) and textures[tex_idx]["filename"]:
            mtl_lines.append(f"map_Kd {name}.png")

    # the .obj goes last; its presence marks the model as exported
    for path, lines in ((mtl_path, mtl_lines), (obj_path, obj_lines)):
        with open(path, "w", encoding="utf-8", newline="\n") as f:
            f.writelines(line + "\n" for line in lines)

    return used_textures


# ── Dependent model exporter ────────────────────────────────────────────────

class M2Exporter:
    """
    Exports doodad models placed by a WMO. Called as
    ``exporter(file_id_or_name, output_dir)``; returns True on success.
    """
    def __init__(self, source):
        self.source = source

    def export_textures(self, textures, used, output_dir):
        for tex_idx in sorted(used):
            if not (0 <= tex_idx < len(textures)) or not textures[tex_idx]["filename"]:
                continue
            tex_path = textures[tex_idx]["filename"]
            dest = Path(output_dir) / (PureWindowsPath(tex_path).stem.lower() + ".png")
            if dest.exists():
                continue
            blp_data = self.source.read_file(tex_path)
            if blp_data is None:
                print(f"    Texture not found: {tex_path}")
                continue
            try:
                dest.write_bytes(blp_to_png_bytes(blp_data))
            except Exception as e:
                print(f"    Warning: Failed to convert BLP texture {tex_path}: {e}")

    def __call__(self, identifier, output_dir):
        model_path = self.source.resolve_path(identifier)
        if model_path is None:
            print(f"    No path known for doodad {identifier}")
            return False

        m2_data = self.source.read_file(model_path)
        if m2_data is None:
            print(f"    Doodad not found: {model_path}")
            return False
        if len(m2_data) < 8 or m2_data[0:4] != b"MD20":
            print(f"    Invalid M2 magic: {m2_data[0:4]}")
            return False

        skin_path = model_path[:-3] + "00.skin"  # strip .m2, add 00.skin
        skin_data = self.source.read_file(skin_path)
        if skin_data is None:
            print(f"    No .skin file found at {skin_path}")
            return False

        vertices = parse_m2_vertices(m2_data)
        textures = parse_m2_textures(m2_data)
        tex_combos = parse_m2_texture_combos(m2_data)
        local_to_global, indices, submeshes, batches = parse_skin(skin_data)

        if isinstance(identifier, int):
            obj_name = f"{identifier}.obj"
        else:
            obj_name = model_obj_name(identifier)
        obj_path = Path(output_dir) / obj_name
        mtl_path = obj_path.with_suffix(".mtl")

        used = write_m2_obj(obj_path, mtl_path, model_path, vertices, local_to_global,
                            indices, submeshes, submesh_textures(batches, tex_combos), textures)
        self.export_textures(textures, used, output_dir)
        print(f"    Exported doodad {obj_name}")
        return True
