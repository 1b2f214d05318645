"""
Material resolution and on-demand texture export.

Materials either reference a texture by file ID directly (no MOTX chunk) or by
offset into the MOTX texture name table. Each resolved texture is written as
``<name>.png`` next to the mesh unless that file is already there.
"""

import enum
import io
from pathlib import Path, PureWindowsPath

from PIL import Image


class TextureMode(enum.Enum):
    DIRECT = "direct"    # texture1 is a file ID
    INDEXED = "indexed"  # texture1 is an offset into the MOTX table


def texture_mode(wmo):
    return TextureMode.DIRECT if wmo.get("textures") is None else TextureMode.INDEXED


def texture_base_name(texture_path):
    """``Dungeons\\Textures\\Floor.blp`` -> ``Floor``."""
    return PureWindowsPath(texture_path).stem


def texture_file_name(material):
    """PNG file name a material's texture is written to."""
    return material["filename"].lower() + ".png"


# ── BLP texture handling ─────────────────────────────────────────────────────

def blp_to_png_bytes(blp_data):
    """Convert BLP texture data to PNG bytes using Pillow."""
    img = Image.open(io.BytesIO(blp_data))
    img = img.convert("RGBA")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class TextureExporter:
    """Writes textures from a data source as PNG files."""
    def __init__(self, source):
        self.source = source

    def __call__(self, texture_ref, dest_path):
        blp_data = self.source.read_file(texture_ref)
        if blp_data is None:
            raise FileNotFoundError(f"Texture not found: {texture_ref}")
        png = blp_to_png_bytes(blp_data)
        Path(dest_path).write_bytes(png)


# ── Resolution ───────────────────────────────────────────────────────────────

def find_texture(textures, start_offset):
    for entry in textures:
        if entry["startOffset"] == start_offset:
            return entry["filename"]
    return None


def build_material(source_mat, texture_id, filename, texture):
    return {
        "textureID": texture_id,
        "filename": filename,
        "texture": texture,
        "transparent": source_mat["blendMode"] != 0,
        "blendMode": source_mat["blendMode"],
        "shaderID": source_mat.get("shader", 0),
        "terrainType": source_mat.get("groundType", 0),
    }


def export_material_texture(material, texture_dir, export_texture):
    """Write one material's texture unless the PNG already exists. Returns True if written."""
    dest = Path(texture_dir) / texture_file_name(material)
    if dest.exists():
        return False
    try:
        export_texture(material["texture"], dest)
    except Exception as e:
        print(f"  Warning: Failed to export texture {material['texture']}: {e}")
        return False
    return True


def resolve_materials(wmo, texture_dir, export_texture):
    """
    Resolve every source material into an output material record, exporting
    textures as a side effect. Returns the list of materials (same order and
    length as the source material list).
    """
    mode = texture_mode(wmo)
    textures = wmo.get("textures") or []
    materials = []
    resolved = 0  # textures resolved so far
    attempted = set()  # PNG names already handled in this run

    for i, source_mat in enumerate(wmo["materials"]):
        if mode is TextureMode.DIRECT:
            texture = source_mat["texture1"]
            filename = str(texture)
        else:
            texture = find_texture(textures, source_mat["texture1"])
            filename = texture_base_name(texture) if texture is not None else None

        if texture is None:
            print(f"  Material {i}: texture offset {source_mat['texture1']} not in texture table")
            materials.append(build_material(source_mat, 0, f"material_{i}", None))
            continue

        material = build_material(source_mat, resolved + i, filename, texture)
        if texture_file_name(material) not in attempted:
            attempted.add(texture_file_name(material))
            export_material_texture(material, texture_dir, export_texture)
        materials.append(material)
        resolved += 1

    return materials
