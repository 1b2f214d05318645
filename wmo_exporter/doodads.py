"""
Doodad placement resolution and dependent model export.

Each doodad instance in an exported doodad set is resolved to a model file,
exported through the injected ``export_dependent_model(identifier, output_dir)``
callable unless ``<model>.obj`` already exists in the output directory, and
turned into a placement row once that file is present.
"""

import enum
import re
from pathlib import Path, PureWindowsPath

# Doodad set filter value meaning "export every set"
ALL_DOODAD_SETS = 0xFFFF

LEGACY_MODEL_EXT = re.compile(r"\.(mdx|mdl)$", re.IGNORECASE)


class DoodadMode(enum.Enum):
    BY_ID = "id"      # MODI file ID table
    BY_NAME = "name"  # MODN name table


def doodad_mode(wmo):
    return DoodadMode.BY_ID if wmo.get("doodadIds") is not None else DoodadMode.BY_NAME


def sanitize_set_name(set_name):
    return set_name.replace("Set_", "").replace("SET_", "").replace("$DefaultGlobal", "Default")


def normalize_model_name(filename):
    """Old doodad references use .mdx/.mdl; the exported models are .m2."""
    return LEGACY_MODEL_EXT.sub(".m2", filename)


def model_obj_name(filename):
    """``World\\Generic\\Chair.M2`` -> ``chair.obj``."""
    return PureWindowsPath(filename.lower()).stem + ".obj"


def find_doodad_name(doodad_names, offset):
    for entry in doodad_names:
        if entry["startOffset"] == offset:
            return entry["filename"]
    return None


def resolve_model(wmo, mode, definition):
    """Return (identifier passed to the exporter, destination .obj name) or None."""
    if mode is DoodadMode.BY_ID:
        file_id = wmo["doodadIds"][definition["offset"]]
        return file_id, f"{file_id}.obj"

    name = find_doodad_name(wmo.get("doodadNames") or [], definition["offset"])
    if name is None:
        return None
    name = normalize_model_name(name)
    return name, model_obj_name(name)


def ensure_model(identifier, obj_name, output_dir, export_dependent_model):
    """Export a dependent model if needed. Returns True when its .obj exists afterwards."""
    dest = Path(output_dir) / obj_name
    if dest.exists():
        return True
    try:
        exported = export_dependent_model(identifier, output_dir)
    except Exception as e:
        print(f"  Warning: Failed to export doodad {identifier}: {e}")
        exported = False
    if not exported and dest.exists():
        # a failed export leaves no .obj behind
        print(f"  Removing incomplete {dest.name}")
        dest.unlink()
    return dest.exists()


def export_doodads(wmo, output_dir, export_dependent_model, doodad_set=ALL_DOODAD_SETS):
    """
    Walk the doodad sets and return placement rows for every doodad whose
    model could be exported.
    """
    mode = doodad_mode(wmo)
    definitions = wmo.get("doodadDefinitions") or []
    rows = []

    for i, doodad_set_info in enumerate(wmo.get("doodadSets") or []):
        set_name = sanitize_set_name(doodad_set_info["setName"])

        if doodad_set != ALL_DOODAD_SETS and i != doodad_set:
            print(f"Skipping doodadset with ID {i} ({set_name}) because export filter is set to {doodad_set}")
            continue

        print(f"At doodadset {i} ({set_name})")

        first = doodad_set_info["firstInstanceIndex"]
        for j in range(first, first + doodad_set_info["numDoodads"]):
            if j >= len(definitions):
                break
            definition = definitions[j]

            try:
                model = resolve_model(wmo, mode, definition)
            except (IndexError, KeyError):
                model = None
            if model is None:
                continue

            identifier, obj_name = model
            if ensure_model(identifier, obj_name, output_dir, export_dependent_model):
                rows.append({
                    "modelFile": obj_name,
                    "position": definition["position"],
                    "rotation": definition["rotation"],
                    "scale": definition["scale"],
                    "doodadSet": set_name,
                })

    return rows
