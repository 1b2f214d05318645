"""
Render batch to material mapping.
"""

from .geometry import has_geometry

# Batches with this flag keep their material index in the last bounding-box short
LARGE_MATERIAL_FLAG = 2


def batch_material_id(batch):
    if batch["flags"] == LARGE_MATERIAL_FLAG:
        return batch["possibleBox2_3"]
    return batch["materialID"]


def map_render_batches(groups, materials, wmo):
    """
    Attach resolved render batches to every group that has geometry.
    Returns the flat list of all batches, in group order.
    """
    all_batches = []
    for g, source_group in enumerate(wmo.get("groups") or []):
        group = groups[g]
        if not has_geometry(group):
            continue

        batches = []
        for batch in source_group.get("renderBatches") or []:
            material_id = batch_material_id(batch)
            if 0 <= material_id < len(materials):
                blend_type = materials[material_id]["blendMode"]
            else:
                blend_type = 0
            batches.append({
                "firstFace": batch["firstFace"],
                "numFaces": batch["numFaces"],
                "materialID": material_id,
                "groupID": g,
                "blendType": blend_type,
            })
        group["renderBatches"] = batches
        all_batches.extend(batches)

    return all_batches
