"""
Serializers for the placement manifest, the material library and the mesh.
"""

import numpy as np

from .geometry import has_geometry
from .materials import texture_file_name

MANIFEST_HEADER = (
    "ModelFile;PositionX;PositionY;PositionZ;"
    "RotationW;RotationX;RotationY;RotationZ;ScaleFactor;DoodadSet"
)


# ── Placement manifest ──────────────────────────────────────────────────────

def format_manifest_row(row):
    px, py, pz = row["position"]
    rx, ry, rz, rw = row["rotation"]
    fields = [
        row["modelFile"],
        f"{px:.9f}", f"{py:.9f}", f"{pz:.9f}",
        f"{rw:.15f}", f"{rx:.15f}", f"{ry:.15f}", f"{rz:.15f}",
        f"{row['scale']:g}",
        row["doodadSet"],
    ]
    return ";".join(fields)


def write_manifest(path, rows):
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(MANIFEST_HEADER + "\n")
        for row in rows:
            f.write(format_manifest_row(row) + "\n")


# ── Material library ────────────────────────────────────────────────────────

def format_material(material):
    lines = [
        f"newmtl {material['filename']}",
        "Ns 96.078431",
        "Ka 1.000000 1.000000 1.000000",
        "Kd 0.640000 0.640000 0.640000",
        "Ks 0.000000 0.000000 0.000000",
        "Ke 0.000000 0.000000 0.000000",
        "Ni 1.000000",
        "d 1.000000",
        "illum 2",
    ]
    if material["texture"] is not None:
        png_name = texture_file_name(material)
        lines.append(f"map_Kd {png_name}")
        if material["transparent"]:
            lines.append(f"map_d {png_name}")
    # Non-standard lines, read back by downstream tooling
    lines.append(f"blend {material['blendMode']}")
    lines.append(f"shader {material['shaderID']}")
    lines.append(f"terrain {material['terrainType']}")
    return "\n".join(lines) + "\n"


def write_mtl(path, materials):
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        for material in materials:
            f.write(format_material(material))


# ── Mesh ────────────────────────────────────────────────────────────────────

def short_float(value):
    """Shortest text that reads back as the same float32."""
    return str(np.float32(value))


def vertex_lines(positions, uvs, normals):
    """Yield v/vt/vn lines for each vertex. V is flipped here."""
    for pos, uv, norm in zip(positions, uvs, normals):
        yield f"v {short_float(pos[0])} {short_float(pos[1])} {short_float(pos[2])}"
        yield f"vt {short_float(uv[0])} {short_float(-uv[1])}"
        yield f"vn {norm[0]:.12f} {norm[1]:.12f} {norm[2]:.12f}"


def face_lines(group, batch):
    """Yield one ``f`` line per triangle of a render batch, 1-based and globally offset."""
    indices = group["indices"]
    base = group["verticeOffset"] + 1
    for tri in range(batch["numFaces"]):
        i = batch["firstFace"] + tri * 3
        if i + 3 > len(indices):
            break
        a, b, c = (int(indices[i + k]) + base for k in range(3))
        yield f"f {a}/{a}/{a} {b}/{b}/{b} {c}/{c}/{c}"


def write_obj(path, source_file, mtl_name, groups, materials):
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(f"# Written by wmo_exporter. Original file: {source_file}\n")
        f.write(f"mtllib {mtl_name}\n")

        for group in groups:
            if not has_geometry(group):
                continue
            print(f"Writing {group['name']}")
            f.write(f"g {group['name']}\n")

            for line in vertex_lines(group["positions"], group["uvs"], group["normals"]):
                f.write(line + "\n")

            for batch in group["renderBatches"]:
                if batch["numFaces"] <= 0:
                    continue
                if 0 <= batch["materialID"] < len(materials):
                    f.write(f"usemtl {materials[batch['materialID']]['filename']}\n")
                f.write("s 1\n")
                for line in face_lines(group, batch):
                    f.write(line + "\n")
