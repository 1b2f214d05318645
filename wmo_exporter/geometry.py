"""
Group geometry assembly: axis conversion and global vertex offsets.
"""

import numpy as np

ANTIPORTAL = "antiportal"


def convert_positions(verts):
    """Convert WoW positions (Nx3) to OBJ space: (x, y, z) -> (-x, z, y)."""
    verts = np.asarray(verts, dtype=np.float32).reshape(-1, 3)
    return np.column_stack([-verts[:, 0], verts[:, 2], verts[:, 1]]).astype(np.float32)


def convert_normals(norms):
    """Normals get the same axis swap as positions, without the mirror."""
    norms = np.asarray(norms, dtype=np.float32).reshape(-1, 3)
    return np.column_stack([norms[:, 0], norms[:, 2], norms[:, 1]]).astype(np.float32)


def sanitize_group_name(name):
    return name.replace(" ", "_")


def lookup_group_name(group_names, name_offset):
    """Find the MOGN entry for a group's name offset."""
    for entry in group_names:
        if entry["offset"] == name_offset:
            return sanitize_group_name(entry["name"])
    return None


def empty_group():
    """Placeholder for a source group that contributes no geometry."""
    return {
        "name": None,
        "positions": None,
        "normals": None,
        "uvs": None,
        "indices": None,
        "verticeOffset": 0,
        "renderBatches": [],
    }


def has_geometry(group):
    return group["positions"] is not None and len(group["positions"]) > 0


def assemble_group(source_group, name, vertice_offset):
    """Build one output group from decoded group data."""
    verts = source_group["vertices"]
    n_verts = len(verts)

    norms = source_group.get("normals")
    if norms is not None and len(norms) == n_verts:
        normals = convert_normals(norms)
    else:
        normals = np.zeros((n_verts, 3), dtype=np.float32)

    uvs = source_group.get("uvs")
    if uvs is not None and len(uvs) == n_verts:
        uvs = np.asarray(uvs, dtype=np.float32).reshape(-1, 2)
    else:
        uvs = np.zeros((n_verts, 2), dtype=np.float32)

    indices = source_group.get("indices")
    if indices is None:
        indices = np.zeros(0, dtype=np.uint32)
    else:
        indices = np.asarray(indices).reshape(-1).astype(np.uint32)

    return {
        "name": name,
        "positions": convert_positions(verts),
        "normals": normals,
        "uvs": uvs,
        "indices": indices,
        "verticeOffset": vertice_offset,
        "renderBatches": [],
    }


def assemble_groups(wmo):
    """
    Convert every source group, in order, into an output group.

    Returns (groups, total_vertices). The list has one slot per source group;
    groups without vertices and antiportal groups stay as empty slots and do
    not advance the vertex offset.
    """
    source_groups = wmo.get("groups") or []
    group_names = wmo.get("groupNames") or []
    groups_info = wmo.get("groupsInfo") or []
    groups = [empty_group() for _ in source_groups]
    total_vertices = 0

    for g, source_group in enumerate(source_groups):
        print(f"Loading group #{g}")
        verts = source_group.get("vertices")
        if verts is None or len(verts) == 0:
            print("  Group has no vertices!")
            continue

        name = lookup_group_name(group_names, source_group.get("nameOffset"))
        if name is None and g < len(groups_info):
            # MOGI carries the same offset for groups whose header has none
            name = lookup_group_name(group_names, groups_info[g]["nameOffset"])
        if name == ANTIPORTAL:
            print("  Group is antiportal")
            continue
        if name is None:
            name = f"group_{g:03d}"

        groups[g] = assemble_group(source_group, name, total_vertices)
        total_vertices += len(verts)

    return groups, total_vertices
