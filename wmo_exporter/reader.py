"""
WMO root and group file parser.

Produces the decoded dictionary the export pipeline works on: group geometry
and render batches, the group name table, materials, the texture name table,
and doodad sets/definitions with either a doodad name table (MODN) or a
doodad file ID table (MODI).
"""

import struct
import numpy as np


# ── IFF chunk scanner ───────────────────────────────────────────────────────

def scan_chunks(data, start=0, end=None):
    """Yield (magic_reversed, data_offset, size) for each IFF chunk."""
    if end is None:
        end = len(data)
    pos = start
    while pos + 8 <= end:
        raw_magic = data[pos:pos + 4]
        magic = raw_magic[::-1]  # WoW IFF stores reversed
        size = struct.unpack_from("<I", data, pos + 4)[0]
        data_ofs = pos + 8
        if data_ofs + size > end:
            break
        yield magic, data_ofs, size
        pos = data_ofs + size


def parse_string_table(blob):
    """Split a block of null-terminated strings into [(offset, string), ...]."""
    entries = []
    i = 0
    n = len(blob)
    while i < n:
        if blob[i] == 0:
            i += 1
            continue
        start = i
        end = blob.find(b"\x00", start)
        if end < 0:
            end = n
        entries.append((start, blob[start:end].decode("ascii", errors="replace")))
        i = end + 1
    return entries


def read_array(data, offset, dtype, count):
    """Read `count` little-endian values starting at offset."""
    if count <= 0:
        return np.zeros(0, dtype=dtype)
    return np.frombuffer(data, dtype=dtype, count=count, offset=offset)


# ── WMO Root parser ─────────────────────────────────────────────────────────

def parse_wmo_root(data):
    """Parse WMO root file. Returns dict with header counts, tables and doodad data."""
    result = {
        "nMaterials": 0,
        "nGroups": 0,
        "groupNames": [],        # [{"offset", "name"}]
        "groupsInfo": [],
        "materials": None,
        "textures": None,        # [{"startOffset", "filename"}], MOTX only
        "doodadSets": [],
        "doodadDefinitions": [],
        "doodadNames": None,     # [{"startOffset", "filename"}], MODN only
        "doodadIds": None,       # MODI only
    }

    for magic, data_ofs, size in scan_chunks(data):
        if magic == b"MOHD":
            if size >= 8:
                n_mats, n_groups = struct.unpack_from("<II", data, data_ofs)
                result["nMaterials"] = n_mats
                result["nGroups"] = n_groups

        elif magic == b"MOTX":
            result["textures"] = [
                {"startOffset": ofs, "filename": name}
                for ofs, name in parse_string_table(data[data_ofs:data_ofs + size])
            ]

        elif magic == b"MOMT":
            # Materials: 64 bytes each
            result["materials"] = []
            for i in range(size // 64):
                m_ofs = data_ofs + i * 64
                # flags at +0
                shader, blend_mode, texture1 = struct.unpack_from("<III", data, m_ofs + 4)
                # color1 at +16, flags1 at +20, texture2 at +24, color2 at +28
                ground_type = struct.unpack_from("<I", data, m_ofs + 32)[0]
                result["materials"].append({
                    "shader": shader,
                    "blendMode": blend_mode,
                    "texture1": texture1,
                    "groundType": ground_type,
                })

        elif magic == b"MOGN":
            result["groupNames"] = [
                {"offset": ofs, "name": name}
                for ofs, name in parse_string_table(data[data_ofs:data_ofs + size])
            ]

        elif magic == b"MOGI":
            for i in range(size // 32):
                g_ofs = data_ofs + i * 32
                name_ofs = struct.unpack_from("<i", data, g_ofs + 28)[0]
                result["groupsInfo"].append({"nameOffset": name_ofs})

        elif magic == b"MODS":
            # Doodad sets: 20-byte name, first instance, count, padding
            for i in range(size // 32):
                s_ofs = data_ofs + i * 32
                raw_name = data[s_ofs:s_ofs + 20].split(b"\x00", 1)[0]
                first, count = struct.unpack_from("<II", data, s_ofs + 20)
                result["doodadSets"].append({
                    "setName": raw_name.decode("ascii", errors="replace"),
                    "firstInstanceIndex": first,
                    "numDoodads": count,
                })

        elif magic == b"MODN":
            result["doodadNames"] = [
                {"startOffset": ofs, "filename": name}
                for ofs, name in parse_string_table(data[data_ofs:data_ofs + size])
            ]

        elif magic == b"MODD":
            # Doodad definitions: 40 bytes each
            for i in range(size // 40):
                d_ofs = data_ofs + i * 40
                # name offset in the low 24 bits, flags in the high 8
                packed = struct.unpack_from("<I", data, d_ofs)[0]
                position = struct.unpack_from("<3f", data, d_ofs + 4)
                rotation = struct.unpack_from("<4f", data, d_ofs + 16)  # x, y, z, w
                scale = struct.unpack_from("<f", data, d_ofs + 32)[0]
                result["doodadDefinitions"].append({
                    "offset": packed & 0xFFFFFF,
                    "position": position,
                    "rotation": rotation,
                    "scale": scale,
                })

        elif magic == b"MODI":
            n_ids = size // 4
            result["doodadIds"] = list(struct.unpack_from(f"<{n_ids}I", data, data_ofs))

    return result


# ── WMO Group parser ────────────────────────────────────────────────────────

def parse_wmo_group(data):
    """Parse a WMO group file. Returns dict with name offset, geometry and render batches."""
    result = {
        "nameOffset": -1,
        "vertices": None,       # Nx3 float array
        "normals": None,        # Nx3 float array
        "uvs": None,            # Nx2 float array
        "indices": None,        # flat uint16 array
        "renderBatches": None,
    }

    # MOGP wraps all sub-chunks; its header is 68 bytes
    mogp = None
    for magic, data_ofs, size in scan_chunks(data):
        if magic == b"MOGP":
            mogp = (data_ofs, size)
            break

    if mogp is None:
        return result

    mogp_start, mogp_size = mogp
    if mogp_size < 68:
        return result
    result["nameOffset"] = struct.unpack_from("<I", data, mogp_start)[0]

    for magic, data_ofs, size in scan_chunks(data, mogp_start + 68, mogp_start + mogp_size):
        if magic == b"MOVT":
            n_verts = size // 12
            result["vertices"] = read_array(data, data_ofs, "<f4", n_verts * 3).reshape(-1, 3)

        elif magic == b"MONR":
            n_norms = size // 12
            result["normals"] = read_array(data, data_ofs, "<f4", n_norms * 3).reshape(-1, 3)

        elif magic == b"MOTV":
            # Only the first UV set is exported
            if result["uvs"] is None:
                n_uvs = size // 8
                result["uvs"] = read_array(data, data_ofs, "<f4", n_uvs * 2).reshape(-1, 2)

        elif magic == b"MOVI":
            result["indices"] = read_array(data, data_ofs, "<u2", size // 2)

        elif magic == b"MOBA":
            # Render batches: 24 bytes each. The sixth bounding-box short doubles
            # as a large material ID when flags == 2.
            batches = []
            for i in range(size // 24):
                # bounding box (6h), first index, index count, min/max vertex, flags, material
                b = struct.unpack_from("<6hIHHHBB", data, data_ofs + i * 24)
                batches.append({
                    "possibleBox2_3": b[5],
                    "firstFace": b[6],
                    "numFaces": b[7] // 3,  # stored as an index count
                    "flags": b[10],
                    "materialID": b[11],
                })
            result["renderBatches"] = batches

    return result


# ── Loading through a data source ───────────────────────────────────────────

def group_file_path(root_path, group_index):
    """``World\\wmo\\Foo.wmo`` -> ``World\\wmo\\Foo_003.wmo``."""
    return f"{root_path[:-4]}_{group_index:03d}{root_path[-4:]}"


def load_wmo(source, wmo_path):
    """
    Read a WMO root and its group files from a data source.
    Returns the decoded WMO dict, or None if the root file cannot be read.
    """
    root_data = source.read_file(wmo_path)
    if root_data is None:
        print(f"    Root .wmo not found: {wmo_path}")
        return None

    wmo = parse_wmo_root(root_data)
    wmo["fileName"] = wmo_path
    n_groups = wmo["nGroups"] or len(wmo["groupsInfo"])
    print(f"    Groups: {n_groups}, Materials: {len(wmo['materials'] or [])}")

    wmo["groups"] = []
    for gi in range(n_groups):
        group_path = group_file_path(wmo_path, gi)
        group_data = source.read_file(group_path)
        if group_data is None:
            print(f"    Group {gi:03d} not found, skipping")
            wmo["groups"].append(parse_wmo_group(b""))
            continue
        wmo["groups"].append(parse_wmo_group(group_data))

    return wmo
